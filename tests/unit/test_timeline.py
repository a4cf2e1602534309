"""Tests for recording, reduction and range queries on a timeline."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import redis

from storage.redis_client import RedisClient
from timeline import (
    MAX_TIMESPAN_POINTS,
    ConfigurationError,
    CounterStrategy,
    InvalidRangeError,
    SensorData,
    SumStrategy,
    Timeline,
)
from timeline.sensor import to_epoch


class TestConstruction:
    def test_defaults(self, client):
        sensor = Timeline("requests", client, SumStrategy(), interval=60, ttl=3600)
        assert sensor.raw_data_ttl == 3600
        assert sensor.reduce_delay == 60

    @pytest.mark.parametrize(
        "options",
        [
            {"ttl": 3600},
            {"interval": 60},
            {"interval": 0, "ttl": 3600},
            {"interval": 60, "ttl": -1},
            {"interval": 1.5, "ttl": 3600},
            {"interval": "60", "ttl": 3600},
            {"interval": True, "ttl": 3600},
            {"interval": 60, "ttl": 3600, "raw_data_ttl": 0},
            {"interval": 60, "ttl": 3600, "reduce_delay": "soon"},
        ],
    )
    def test_invalid_options(self, client, options):
        with pytest.raises(ConfigurationError):
            Timeline("requests", client, SumStrategy(), **options)

    @pytest.mark.parametrize("name", ["", "a:b", "cpu*", "x?", "has space", None])
    def test_invalid_names(self, client, name):
        with pytest.raises(ConfigurationError):
            Timeline(name, client, SumStrategy(), interval=60, ttl=3600)

    def test_keys(self, make_timeline, t0):
        sensor = make_timeline()
        assert sensor.raw_data_key(t0) == f"pulse_meter:raw:requests:{t0}"
        assert sensor.data_key(t0) == f"pulse_meter:data:requests:{t0}"
        assert sensor.current_raw_data_key() == f"pulse_meter:raw:requests:{t0}"

    def test_namespace_from_settings(self, settings, conn):
        settings.key_namespace = "metrics"
        client = RedisClient(settings, connection=conn)
        sensor = Timeline("cpu", client, SumStrategy(), interval=10, ttl=100)
        assert sensor.data_key(20) == "metrics:data:cpu:20"


class TestEvent:
    def test_writes_current_raw_bucket_with_ttl(self, make_timeline, conn, t0):
        sensor = make_timeline()
        sensor.event(4)
        key = sensor.raw_data_key(t0)
        assert float(conn.get(key)) == 4
        assert 0 < conn.ttl(key) <= 120

    def test_ttl_slides_on_each_event(self, make_timeline, conn, t0):
        sensor = make_timeline()
        sensor.event(1)
        key = sensor.raw_data_key(t0)
        conn.expire(key, 5)
        sensor.event(1)
        assert conn.ttl(key) > 5

    def test_events_in_next_interval_use_new_bucket(self, make_timeline, clock, conn, t0):
        sensor = make_timeline()
        sensor.event(1)
        clock.advance(60)
        sensor.event(2)
        assert float(conn.get(sensor.raw_data_key(t0))) == 1
        assert float(conn.get(sensor.raw_data_key(t0 + 60))) == 2

    def test_store_failure_propagates(self, settings):
        connection = MagicMock()
        connection.pipeline.return_value.execute.side_effect = redis.ConnectionError("down")
        client = RedisClient(settings, connection=connection)
        sensor = Timeline("requests", client, SumStrategy(), interval=60, ttl=3600)
        with pytest.raises(redis.ConnectionError):
            sensor.event(1)


class TestReduce:
    def test_sum_scenario(self, make_timeline, conn, t0):
        sensor = make_timeline()
        for v in (2, 3, 5):
            sensor.record(v)

        points = sensor.timeline_within(t0 - 1, t0 + 60)
        assert points == [SensorData(t0, 10.0)]

        sensor.reduce(t0)
        assert not conn.exists(sensor.raw_data_key(t0))
        assert conn.get(sensor.data_key(t0)) == "10.0"
        assert 3500 < conn.ttl(sensor.data_key(t0)) <= 3600

        points = sensor.timeline_within(t0 - 1, t0 + 60)
        assert points == [SensorData(t0, 10.0)]

    def test_idempotent(self, make_timeline, conn, t0):
        sensor = make_timeline()
        sensor.event(7)
        sensor.reduce(t0)
        before = {k: conn.get(k) for k in conn.keys("*")}
        sensor.reduce(t0)
        assert {k: conn.get(k) for k in conn.keys("*")} == before

    def test_missing_raw_bucket_is_noop(self, make_timeline, conn, t0):
        make_timeline().reduce(t0)
        assert conn.keys("*") == []

    def test_reduce_does_not_refresh_summary_ttl(self, make_timeline, conn, t0):
        sensor = make_timeline()
        sensor.event(1)
        sensor.reduce(t0)
        conn.expire(sensor.data_key(t0), 10)
        sensor.reduce(t0)
        assert conn.ttl(sensor.data_key(t0)) <= 10

    def test_returns_whether_bucket_was_reduced(self, make_timeline, t0):
        sensor = make_timeline()
        sensor.record(1)
        assert sensor.reduce(t0) is True
        assert sensor.reduce(t0) is False

    def test_failed_batch_leaves_raw_bucket(self, make_timeline, conn, monkeypatch, t0):
        sensor = make_timeline()
        sensor.record(4)
        real_pipeline = conn.pipeline

        def failing_pipeline(*args, **kwargs):
            pipe = real_pipeline(*args, **kwargs)
            pipe.execute = MagicMock(side_effect=redis.ConnectionError("down"))
            return pipe

        monkeypatch.setattr(conn, "pipeline", failing_pipeline)
        with pytest.raises(redis.ConnectionError):
            sensor.reduce(t0)
        monkeypatch.undo()

        assert float(conn.get(sensor.raw_data_key(t0))) == 4
        assert not conn.exists(sensor.data_key(t0))

    def test_counter_summary_parsed_as_int(self, make_timeline, t0):
        sensor = make_timeline(strategy=CounterStrategy())
        sensor.event()
        sensor.event()
        sensor.reduce(t0)
        assert sensor.timeline_within(t0 - 1, t0 + 60) == [SensorData(t0, 2)]


class TestReduceAllRaw:
    def test_respects_reduce_delay(self, make_timeline, clock, conn, t0):
        sensor = make_timeline()
        sensor.event(1)

        # min_time = now - reduce_delay(30) - interval(60)
        clock.now = t0 + 89
        assert sensor.reduce_all_raw() == 0
        assert conn.exists(sensor.raw_data_key(t0))

        clock.now = t0 + 90
        assert sensor.reduce_all_raw() == 1
        assert not conn.exists(sensor.raw_data_key(t0))
        assert conn.get(sensor.data_key(t0)) == "1.0"

    def test_only_old_buckets_reduced(self, make_timeline, clock, conn, t0):
        sensor = make_timeline()
        sensor.event(1)
        clock.advance(120)
        sensor.event(2)
        assert sensor.reduce_all_raw() == 1
        assert conn.exists(sensor.data_key(t0))
        assert conn.exists(sensor.raw_data_key(t0 + 120))

    def test_ignores_other_sensors(self, make_timeline, clock, conn, t0):
        mine = make_timeline("req")
        other = make_timeline("req2")
        mine.event(1)
        other.event(1)
        clock.advance(600)
        assert mine.reduce_all_raw() == 1
        assert conn.exists(other.raw_data_key(t0))

    def test_counts_only_buckets_actually_reduced(self, make_timeline, clock, monkeypatch, t0):
        sensor = make_timeline()
        sensor.record(1)
        clock.advance(600)
        # second key vanished (expired or reduced elsewhere) after the SCAN
        monkeypatch.setattr(
            sensor, "_raw_keys", lambda r: [sensor.raw_data_key(t0), sensor.raw_data_key(t0 - 60)]
        )
        assert sensor.reduce_all_raw() == 1

    def test_repeated_sweeps_are_harmless(self, make_timeline, clock, t0):
        sensor = make_timeline()
        sensor.event(3)
        clock.advance(600)
        assert sensor.reduce_all_raw() == 1
        assert sensor.reduce_all_raw() == 0
        assert sensor.timeline_within(t0 - 1, t0 + 60) == [SensorData(t0, 3.0)]


class TestOptimizedInterval:
    def test_doubling_example(self, make_timeline):
        sensor = make_timeline(interval=10)
        assert sensor.optimized_interval(0, 20000) == 40

    def test_short_range_keeps_base_interval(self, make_timeline):
        assert make_timeline().optimized_interval(0, 3600) == 60

    @pytest.mark.parametrize("span", [1, 999, 59_940, 59_941, 86_400, 31_536_000, 10**9])
    def test_bounds_point_count(self, make_timeline, span):
        sensor = make_timeline()
        width = sensor.optimized_interval(1000, 1000 + span)
        ratio = width // sensor.interval
        assert width % sensor.interval == 0
        assert ratio & (ratio - 1) == 0
        assert span / width <= MAX_TIMESPAN_POINTS - 1


class TestTimelineWithin:
    def test_absent_interval(self, make_timeline, t0):
        assert make_timeline().timeline_within(t0 - 1, t0 + 60) == [SensorData(t0, None)]

    def test_left_bucket_excluded(self, make_timeline, t0):
        sensor = make_timeline()
        sensor.event(1)
        points = sensor.timeline_within(t0 + 1, t0 + 181)
        assert [p.timestamp for p in points] == [t0 + 60, t0 + 120, t0 + 180]
        assert all(p.value is None for p in points)

    def test_ascending_and_mixed_sources(self, make_timeline, clock, t0):
        sensor = make_timeline()
        sensor.event(1)
        clock.advance(120)
        sensor.event(5)
        sensor.reduce(t0)
        points = sensor.timeline_within(t0 - 1, t0 + 180)
        assert points == [
            SensorData(t0, 1.0),
            SensorData(t0 + 60, None),
            SensorData(t0 + 120, 5.0),
        ]

    def test_raw_fallback_does_not_persist(self, make_timeline, conn, t0):
        sensor = make_timeline()
        sensor.event(1)
        sensor.timeline_within(t0 - 1, t0 + 60)
        assert conn.exists(sensor.raw_data_key(t0))
        assert not conn.exists(sensor.data_key(t0))

    def test_long_range_is_capped(self, make_timeline, t0):
        sensor = make_timeline()
        points = sensor.timeline_within(t0 - 365 * 86_400, t0)
        assert 0 < len(points) <= MAX_TIMESPAN_POINTS
        steps = {b.timestamp - a.timestamp for a, b in zip(points, points[1:])}
        assert steps == {sensor.optimized_interval(t0 - 365 * 86_400, t0)}

    def test_accepts_datetimes(self, make_timeline, t0):
        sensor = make_timeline()
        sensor.event(2)
        start = datetime.fromtimestamp(t0 - 1, tz=timezone.utc)
        end = datetime.fromtimestamp(t0 + 60, tz=timezone.utc)
        points = sensor.timeline_within(start, end)
        assert points == [SensorData(t0, 2.0)]
        assert points[0].time == datetime.fromtimestamp(t0, tz=timezone.utc)

    def test_naive_datetimes_are_utc(self, make_timeline, t0):
        sensor = make_timeline()
        sensor.record(2)
        aware = datetime.fromtimestamp(t0 - 1, tz=timezone.utc)
        naive = aware.replace(tzinfo=None)
        assert to_epoch(naive) == to_epoch(aware) == t0 - 1
        points = sensor.timeline_within(naive, naive + timedelta(seconds=61))
        assert points == [SensorData(t0, 2.0)]

    def test_timeline_time_ago(self, make_timeline, clock, t0):
        sensor = make_timeline()
        sensor.event(1)
        clock.advance(60)
        points = sensor.timeline(120)
        assert SensorData(t0, 1.0) in points

    @pytest.mark.parametrize("time_ago", [0, -5, "60", None, True])
    def test_timeline_rejects_bad_time_ago(self, make_timeline, time_ago):
        with pytest.raises(InvalidRangeError):
            make_timeline().timeline(time_ago)

    @pytest.mark.parametrize(
        "start, end",
        [
            ("yesterday", 100),
            (0, None),
            (True, 100),
            (100, 100),
            (200, 100),
            (float("nan"), 100),
        ],
    )
    def test_invalid_ranges_never_touch_store(self, settings, start, end):
        connection = MagicMock()
        sensor = Timeline(
            "requests",
            RedisClient(settings, connection=connection),
            SumStrategy(),
            interval=60,
            ttl=3600,
        )
        with pytest.raises(InvalidRangeError):
            sensor.timeline_within(start, end)
        with pytest.raises(InvalidRangeError):
            sensor.drop_within(start, end)
        assert connection.method_calls == []

    def test_sensor_data_to_dict(self):
        assert SensorData(60, None).to_dict() == {"timestamp": 60, "value": None}


class TestDropWithin:
    def test_removes_keys_in_range(self, make_timeline, clock, conn, t0):
        sensor = make_timeline()
        sensor.event(1)
        sensor.reduce(t0)
        clock.advance(60)
        sensor.event(2)
        clock.advance(60)
        sensor.event(3)

        # covers t0 and t0 + 60, not t0 + 120
        assert sensor.drop_within(t0 - 1, t0 + 120) == 2
        assert not conn.exists(sensor.data_key(t0))
        assert not conn.exists(sensor.raw_data_key(t0 + 60))
        assert conn.exists(sensor.raw_data_key(t0 + 120))

        assert sensor.drop_within(t0 - 1, t0 + 120) == 0

    def test_uses_base_interval(self, make_timeline, clock, conn, t0):
        sensor = make_timeline(interval=10)
        sensor.event(1)
        clock.advance(10)
        sensor.event(1)
        # wide enough that a query would coarsen the width
        assert sensor.drop_within(t0 - 100_000, t0 + 100) == 2

    def test_empty_range(self, make_timeline, t0):
        assert make_timeline().drop_within(t0 + 1, t0 + 2) == 0


class TestCleanup:
    def test_removes_all_sensor_keys(self, make_timeline, clock, conn, t0):
        sensor = make_timeline("req")
        other = make_timeline("req2")
        sensor.event(1)
        sensor.reduce(t0)
        clock.advance(60)
        sensor.event(2)
        other.event(9)

        assert sensor.cleanup() == 2
        assert conn.keys("pulse_meter:*:req:*") == []
        assert conn.exists(other.raw_data_key(t0 + 60))

    def test_nothing_to_clean(self, make_timeline):
        assert make_timeline().cleanup() == 0
