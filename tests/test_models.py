from datetime import datetime, timezone

from watch_export.models import (
    NO_IMAGE,
    UNKNOWN_PUBLISHER,
    AggregateRecord,
    SeriesMetadata,
    WatchEvent,
)


def _series_payload(**overrides):
    payload = {
        "id": "GRDV0019R",
        "title": "Jujutsu Kaisen",
        "slug_title": "jujutsu-kaisen",
        "description": "Short description",
        "extended_description": "Long description",
        "episode_count": 47,
        "season_count": 3,
        "content_provider": "TOHO",
        "keywords": ["curse", "sorcery"],
        "images": {
            "poster_tall": [
                [
                    {"source": "https://img.example.com/60x90.jpg", "width": 60},
                    {"source": "https://img.example.com/120x180.jpg", "width": 120},
                    {"source": "https://img.example.com/240x360.jpg", "width": 240},
                    {"source": "https://img.example.com/480x720.jpg", "width": 480},
                ]
            ]
        },
    }
    payload.update(overrides)
    return payload


def test_series_metadata_from_api_payload_maps_fields():
    series = SeriesMetadata.from_api_payload(_series_payload())

    assert series.title == "Jujutsu Kaisen"
    assert series.slug == "jujutsu-kaisen"
    assert series.extended_description == "Long description"
    assert series.episode_count == 47
    assert series.season_count == 3
    assert series.publisher == "TOHO"
    assert series.keywords == ["curse", "sorcery"]
    assert series.poster_tall == "https://img.example.com/240x360.jpg"


def test_series_metadata_accepts_flat_poster_list():
    payload = _series_payload(
        images={
            "poster_tall": [
                {"source": "https://img.example.com/a.jpg"},
                {"source": "https://img.example.com/b.jpg"},
                {"source": "https://img.example.com/c.jpg"},
            ]
        }
    )

    assert SeriesMetadata.from_api_payload(payload).poster_tall == "https://img.example.com/c.jpg"


def test_series_metadata_fallbacks():
    payload = _series_payload(
        content_provider=None,
        images={"poster_tall": [[{"source": "https://img.example.com/a.jpg"}]]},
    )

    series = SeriesMetadata.from_api_payload(payload)

    assert series.publisher == UNKNOWN_PUBLISHER == "Unknown"
    assert series.poster_tall == NO_IMAGE == "No image available"


def test_series_metadata_missing_images_and_counts():
    series = SeriesMetadata.from_api_payload({"title": "Bare"})

    assert series.poster_tall == NO_IMAGE
    assert series.publisher == UNKNOWN_PUBLISHER
    assert series.episode_count == 0
    assert series.keywords == []


def test_aggregate_record_snapshot_entry_shape():
    record = AggregateRecord(
        series=SeriesMetadata.from_api_payload(_series_payload()),
        episodes_watched=4,
    )

    entry = record.to_snapshot_entry()

    assert entry == {
        "series": {
            "title": "Jujutsu Kaisen",
            "slug": "jujutsu-kaisen",
            "description": "Short description",
            "extendedDescription": "Long description",
            "episodes": 47,
            "seasons": 3,
            "publisher": "TOHO",
            "keywords": ["curse", "sorcery"],
            "posterTall": "https://img.example.com/240x360.jpg",
        },
        "episodesWatched": 4,
    }
    assert list(entry["series"]) == [
        "title",
        "slug",
        "description",
        "extendedDescription",
        "episodes",
        "seasons",
        "publisher",
        "keywords",
        "posterTall",
    ]


def test_aggregate_record_accepts_camel_case_input():
    record = AggregateRecord.model_validate(
        {"series": {"title": "Frieren", "posterTall": "x"}, "episodesWatched": 2}
    )

    assert record.episodes_watched == 2
    assert record.series.poster_tall == "x"


def test_watch_event_normalises_timestamps_to_utc():
    event = WatchEvent.model_validate(
        {"series_id": "G1", "watched_at": "2025-02-01T09:00:00+09:00"}
    )

    assert event.watched_at == datetime(2025, 2, 1, 0, 0, tzinfo=timezone.utc)


def test_series_metadata_ignores_non_list_keywords():
    series = SeriesMetadata.from_api_payload(_series_payload(keywords="isekai"))

    assert series.keywords == []
