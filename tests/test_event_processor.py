"""Unit tests for EventProcessor."""
import json
from datetime import datetime

import pytest

from errors import MalformedResponseError
from processor.event_processor import EventProcessor, strip_code_fence
from processor.models import ContractEventBatch, Event, EventStatus, EventType

NOW = datetime(2025, 1, 6, 13, 0, 0)


class TestStripCodeFence:
    """Test cases for strip_code_fence."""

    def test_strips_json_fence(self):
        assert strip_code_fence('```json\n{"events": []}\n```') == '{"events": []}'

    def test_strips_bare_fence(self):
        assert strip_code_fence('  ```\n{"a": 1}\n```  ') == '{"a": 1}'

    def test_leaves_plain_text(self):
        assert strip_code_fence('{"events": []}') == '{"events": []}'


class TestEventProcessor:
    """Test cases for EventProcessor class."""

    def test_quiz_night_scenario(self):
        """A quiz starting 30 minutes from now is active."""
        processor = EventProcessor()
        payload = json.dumps({
            'events': [{
                'title': 'Quiz Night',
                'description': 'd',
                'date': '2025-01-06',
                'type': 'quiz',
                'time': '13:30'
            }]
        })

        events = processor.transform(processor.parse_batch(payload), now=NOW)

        assert len(events) == 1
        event = events[0]
        assert event.status == EventStatus.ACTIVE
        assert event.type == EventType.QUIZ
        assert event.title == 'Quiz Night'
        assert event.time == '13:30'
        assert event.discord_link is None

    def test_parse_batch_fenced_payload(self):
        processor = EventProcessor()
        payload = '```json\n{"events": [{"title": "A", "date": "2025-01-06"}], ' \
                  '"last_sync": "2025-01-05T10:00:00", "total_count": 1}\n```'

        batch = processor.parse_batch(payload)

        assert len(batch.records) == 1
        assert batch.last_sync == '2025-01-05T10:00:00'
        assert batch.total_count == 1

    def test_parse_batch_accepts_decoded_dict(self):
        batch = EventProcessor().parse_batch({'events': [{'title': 'A'}]})

        assert batch.records == [{'title': 'A'}]

    def test_parse_batch_missing_events_is_empty(self):
        assert EventProcessor().parse_batch('{"last_sync": null}').records == []
        assert EventProcessor().parse_batch({'events': 'nope'}).records == []

    @pytest.mark.parametrize('payload', ['not json', '[1, 2, 3]', '```json\n{oops\n```', 42])
    def test_parse_batch_malformed(self, payload):
        with pytest.raises(MalformedResponseError):
            EventProcessor().parse_batch(payload)

    def test_transform_skips_invalid_records(self):
        processor = EventProcessor()
        batch = ContractEventBatch(records=[
            'not a record',
            {'title': '', 'date': '2025-01-06'},
            {'title': '   ', 'date': '2025-01-06'},
            {'title': 'Valid', 'date': '2025-01-07', 'time': '10:00'},
        ])

        events = processor.transform(batch, now=NOW)

        assert [e.title for e in events] == ['Valid']

    def test_transform_keeps_records_without_date(self):
        batch = ContractEventBatch(records=[
            {'title': 'Mystery AMA', 'date': '', 'type': 'ama'},
            {'title': 'No date key'},
        ])

        events = EventProcessor().transform(batch, now=NOW)

        assert [e.title for e in events] == ['Mystery AMA', 'No date key']
        assert all(e.date == '' for e in events)
        assert all(e.status == EventStatus.UPCOMING for e in events)
        assert events[0].id != events[1].id

    def test_transform_time_fallbacks(self):
        processor = EventProcessor()
        batch = ContractEventBatch(records=[
            {'title': 'A', 'date': '2025-01-07', 'start_time': '18:45:00'},
            {'title': 'B', 'date': '2025-01-07'},
            {'title': 'C', 'date': '2025-01-07', 'time': '2:00 PM', 'start_time': '09:00'},
        ])

        events = processor.transform(batch, now=NOW)

        assert events[0].time == '18:45'
        assert events[1].time == 'TBD'
        assert events[2].time == '2:00 PM'

    def test_transform_keeps_discord_link(self):
        batch = ContractEventBatch(records=[{
            'title': 'AMA', 'date': '2025-01-07', 'type': 'Ask me anything',
            'discord_link': 'https://discord.gg/abc'
        }])

        event = EventProcessor().transform(batch, now=NOW)[0]

        assert event.discord_link == 'https://discord.gg/abc'
        assert event.type == EventType.AMA

    def test_transform_ids_unique_within_batch(self):
        record = {'title': 'Game Night', 'date': '2025-01-07', 'time': '20:00'}
        batch = ContractEventBatch(records=[record, dict(record), dict(record)])

        events = EventProcessor().transform(batch, now=NOW)

        assert len({e.id for e in events}) == 3

    def test_transform_keeps_long_fields_intact(self):
        batch = ContractEventBatch(records=[{
            'title': 'T' * 500, 'description': 'D' * 5000, 'date': '2025-01-07'
        }])

        event = EventProcessor().transform(batch, now=NOW)[0]

        assert event.title == 'T' * 500
        assert event.description == 'D' * 5000

    @pytest.mark.parametrize('raw_type, expected', [
        ('quiz', EventType.QUIZ),
        ('Weekly QUIZ', EventType.QUIZ),
        ('Workshop', EventType.WORKSHOP),
        ('AMA', EventType.AMA),
        ('Ask the team', EventType.AMA),
        ('Game night', EventType.GAME),
        ('Play-test', EventType.GAME),
        ('Announcements', EventType.ANNOUNCEMENTS),
        ('Livestream', EventType.MEETING),
        ('community call', EventType.MEETING),
        (None, EventType.MEETING),
    ])
    def test_map_event_type(self, raw_type, expected):
        assert EventProcessor().map_event_type(raw_type) == expected

    def test_generate_event_id_consistency(self):
        processor = EventProcessor()

        event_id_1 = processor.generate_event_id(title='Test Event', date='2025-01-06', index=0)
        event_id_2 = processor.generate_event_id(title='Test Event', date='2025-01-06', index=0)

        assert event_id_1 == event_id_2
        assert len(event_id_1) == 64

    def test_generate_event_id_depends_on_position(self):
        processor = EventProcessor()

        assert processor.generate_event_id('E', '2025-01-06', 0) != \
            processor.generate_event_id('E', '2025-01-06', 1)

    def test_restamp_recomputes_status(self):
        stale = Event(
            id='x', title='Old', description='', date='2024-12-30', time='10:00',
            type=EventType.MEETING, status=EventStatus.UPCOMING
        )

        restamped = EventProcessor().restamp([stale], now=NOW)

        assert restamped[0].status == EventStatus.PAST
        assert stale.status == EventStatus.UPCOMING

    def test_rows_to_records(self):
        rows = [
            ['Title', 'Description', 'Date', 'Time', 'Type', 'Discord'],
            ['Quiz', 'Fun', '1/6/2025', '2:00 PM', 'quiz', 'https://discord.gg/q'],
            ['', 'skipped'],
            ['Short row', 'only two'],
            ['  ', 'blank title cell', '1/7/2025'],
        ]

        records = EventProcessor().rows_to_records(rows)

        assert len(records) == 2
        assert records[0]['discord_link'] == 'https://discord.gg/q'
        assert records[1] == {
            'title': 'Short row', 'description': 'only two', 'date': '',
            'time': '', 'type': '', 'discord_link': ''
        }
