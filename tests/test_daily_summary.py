"""Tests for daily summary aggregation and the summary.daily handler."""

from datetime import date, datetime, timezone

import pytest

from wellness_workers.daily_summary import (
    compute_daily_summary,
    daily_summary_path,
    read_number,
    round_half_up,
    summarize_day,
    upf_percentage,
)
from wellness_workers.errors import InvalidInputError
from wellness_workers.handlers.daily_summary import resolve_day_request, update_daily_summary
from wellness_workers.models import CanonicalRecord

DAY = date(2024, 3, 10)


def _record(pillar, payload, record_id="r1"):
    return CanonicalRecord(
        id=record_id,
        pillar=pillar,
        occurs_at=datetime(2024, 3, 10, 12, tzinfo=timezone.utc),
        title="t",
        payload=payload,
    )


class TestHelpers:
    def test_read_number_tolerates_junk(self):
        assert read_number("12.5") == 12.5
        assert read_number(None) == 0.0
        assert read_number("abc") == 0.0
        assert read_number(True) == 0.0
        assert read_number(float("inf")) == 0.0

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(2.49) == 2

    def test_upf_percentage_bounds(self):
        assert upf_percentage(0, 100) == 0.0
        assert upf_percentage(500, 500) == 100.0
        assert upf_percentage(100, 250) == 100.0
        assert upf_percentage(400, 100) == 25.0


class TestSummarizeDay:
    def test_empty_day_is_zero(self):
        summary = summarize_day([], DAY)
        assert summary.calories == 0
        assert summary.upf_percentage == 0
        assert summary.nutrients == {}

    def test_all_upf_meal(self):
        summary = summarize_day(
            [_record("nutrition", {"summary": {"totalMealCalories": 500, "totalMealUpfCalories": 500}})],
            DAY,
        )
        assert summary.calories == 500
        assert summary.upf_percentage == 100

    def test_nutrients_summed_with_units(self):
        meal = {"summary": {
            "totalMealCalories": 300,
            "allNutrients": {"Protein": {"value": 20.5, "unit": "g"}, "Iron": {"value": 2, "unit": "mg"}},
        }}
        legacy = {"summary": {"totalMealCalories": 200, "nutrients": {"Protein": {"value": 9.5}}}}
        summary = summarize_day(
            [_record("nutrition", meal, "n1"), _record("nutrition", legacy, "n2")],
            DAY,
        )
        assert summary.calories == 500
        assert summary.nutrients["Protein"].value == 30.0
        assert summary.nutrients["Protein"].unit == "g"
        assert summary.nutrients["Iron"].unit == "mg"

    def test_naps_excluded_from_sleep(self):
        summary = summarize_day(
            [
                _record("sleep", {"duration": 7.5}, "s1"),
                _record("sleep", {"duration": 1, "isNap": True}, "s2"),
            ],
            DAY,
        )
        assert summary.sleep_hours == 8

    def test_activity_prefers_duration_in_minutes(self):
        summary = summarize_day(
            [
                _record("activity", {"durationInMinutes": 40, "duration": 1}, "a1"),
                _record("activity", {"duration": 20}, "a2"),
            ],
            DAY,
        )
        assert summary.activity_minutes == 60

    def test_other_pillars_ignored(self):
        summary = summarize_day([_record("stress", {"amount": 50})], DAY)
        assert summary.hydration_amount == 0


class TestComputeDailySummary:
    @pytest.mark.asyncio
    async def test_sleep_counts_toward_wake_up_day_only(self, store):
        store.add("sleep", "c1", "s1", {
            "entryDate": "2024-03-09T23:00:00Z",
            "wakeUpDay": "2024-03-10T07:00:00Z",
            "duration": 8,
        })

        day = await compute_daily_summary(store, "c1", DAY, "UTC", 0)
        previous = await compute_daily_summary(store, "c1", date(2024, 3, 9), "UTC", 0)

        assert day.sleep_hours == 8
        assert previous.sleep_hours == 0

    @pytest.mark.asyncio
    async def test_failing_pillar_contributes_zero(self, store):
        store.failing.add("nutrition")
        store.add("hydration", "c1", "h1", {"entryDate": "2024-03-10T12:00:00Z", "amount": 16})
        store.add("activity", "c1", "a1", {"entryDate": "2024-03-10T08:00:00Z", "duration": 30})

        summary = await compute_daily_summary(store, "c1", DAY, "UTC", 0)

        assert summary.calories == 0
        assert summary.hydration_amount == 16
        assert summary.activity_minutes == 30

    @pytest.mark.asyncio
    async def test_local_day_boundaries_follow_offset(self, store):
        # 03:00 UTC on the 11th is still the 10th in New York (UTC-5).
        store.add("hydration", "c1", "h1", {"entryDate": "2024-03-11T03:00:00Z", "amount": 12})

        new_york = await compute_daily_summary(store, "c1", DAY, "America/New_York", 300)
        utc = await compute_daily_summary(store, "c1", DAY, "UTC", 0)

        assert new_york.hydration_amount == 12
        assert utc.hydration_amount == 0

    @pytest.mark.asyncio
    async def test_persists_with_merge(self, store):
        path = daily_summary_path("c1", DAY)
        store.documents[path] = {"coachNote": "keep me"}
        store.add("hydration", "c1", "h1", {"entryDate": "2024-03-10T12:00:00Z", "amount": 8})

        await compute_daily_summary(store, "c1", "2024-03-10", "UTC", 0)

        document = store.documents[path]
        assert document["coachNote"] == "keep me"
        assert document["hydrationAmount"] == 8
        assert document["date"] == "2024-03-10"
        assert document["lastCalculated"] is not None

    @pytest.mark.asyncio
    async def test_dry_run_does_not_write(self, store):
        await compute_daily_summary(store, "c1", DAY, "UTC", 0, persist=False)
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_invalid_input_raises(self, store):
        with pytest.raises(InvalidInputError):
            await compute_daily_summary(store, "c1", DAY, "UTC", None)


class TestDailyHandler:
    @pytest.mark.asyncio
    async def test_requires_client_id(self, store):
        with pytest.raises(ValueError, match="Missing client_id"):
            await update_daily_summary(store, {"entry_date": "2024-03-10T12:00:00Z"})

    @pytest.mark.asyncio
    async def test_resolves_local_day_from_profile(self, store):
        store.documents["clients/c1"] = {"timezone": "America/New_York", "timezoneOffset": 300}

        day, tz, offset = await resolve_day_request(
            store, {"client_id": "c1", "entry_date": "2024-03-11T03:00:00Z"}
        )

        assert (day, tz, offset) == ("2024-03-10", "America/New_York", 300)

    @pytest.mark.asyncio
    async def test_unknown_profile_defaults_to_utc(self, store):
        day, tz, offset = await resolve_day_request(
            store, {"client_id": "ghost", "entry_date": "2024-03-11T03:00:00Z"}
        )
        assert (day, tz, offset) == ("2024-03-11", "UTC", 0.0)

    @pytest.mark.asyncio
    async def test_explicit_date_and_zone(self, store):
        day, tz, offset = await resolve_day_request(
            store, {"client_id": "c1", "date": "2024-07-04", "timezone": "America/New_York"}
        )
        assert (day, tz, offset) == ("2024-07-04", "America/New_York", 240)

    @pytest.mark.asyncio
    async def test_bare_date_keeps_local_day(self, store):
        store.documents["clients/c1"] = {"timezone": "Asia/Tokyo"}

        day, tz, offset = await resolve_day_request(store, {"client_id": "c1", "date": "2024-03-10"})

        assert (day, tz, offset) == ("2024-03-10", "Asia/Tokyo", -540)

    @pytest.mark.asyncio
    async def test_rejects_unparseable_entry_date(self, store):
        with pytest.raises(InvalidInputError):
            await resolve_day_request(store, {"client_id": "c1", "entry_date": "soon"})

    @pytest.mark.asyncio
    async def test_handler_writes_summary(self, store):
        store.add("hydration", "c1", "h1", {"entryDate": "2024-03-10T12:00:00Z", "amount": 8})

        await update_daily_summary(store, {"client_id": "c1", "entry_date": "2024-03-10T12:00:00Z"})

        assert store.documents[daily_summary_path("c1", DAY)]["hydrationAmount"] == 8
