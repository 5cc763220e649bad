"""Unit tests for LedgerEventSource and SheetsEventSource."""
import json
import threading
from unittest.mock import MagicMock

import pytest
import responses
from requests.exceptions import ConnectionError

from errors import MalformedResponseError, TransportError
from ledger.rpc_client import RemoteLedgerClient
from ledger.transaction_waiter import TransactionWaiter
from processor.models import EventType, Receipt, TransactionHandle, TransactionStatus
from sources.event_source import LedgerEventSource
from sources.sheets_source import SheetsEventSource

ADDRESS = '0xA9485ec8a442189F25D70399f12dF370b23408fb'
SHEET_URL = 'https://sheets.googleapis.com/v4/spreadsheets/sheet-123/values'


@pytest.fixture
def ledger_client():
    return MagicMock(spec=RemoteLedgerClient)


@pytest.fixture
def waiter():
    return MagicMock(spec=TransactionWaiter)


class TestLedgerEventSource:
    """Test cases for LedgerEventSource class."""

    def test_read_parses_fenced_contract_payload(self, ledger_client, waiter):
        ledger_client.read_state.return_value = '```json\n' + json.dumps({
            'events': [
                {'title': 'Quiz Night', 'description': 'd', 'date': '2025-01-06',
                 'type': 'quiz', 'time': '13:30:00'},
                {'title': 'Builders Workshop', 'description': '', 'date': '2025-01-08',
                 'type': 'Workshop', 'start_time': '18:00'},
            ],
            'last_sync': '2025-01-05T10:00:00',
            'total_count': 2
        }) + '\n```'
        source = LedgerEventSource(ledger_client, waiter, ADDRESS)

        events = source.read()

        ledger_client.read_state.assert_called_once_with(
            ADDRESS, {'function': 'read_events', 'args': []}
        )
        assert [e.type for e in events] == [EventType.QUIZ, EventType.WORKSHOP]
        assert events[0].time == '13:30'
        assert events[1].time == '18:00'

    def test_read_malformed_payload(self, ledger_client, waiter):
        ledger_client.read_state.return_value = 'definitely not json'

        with pytest.raises(MalformedResponseError):
            LedgerEventSource(ledger_client, waiter, ADDRESS).read()

    def test_read_transport_error_propagates(self, ledger_client, waiter):
        ledger_client.read_state.side_effect = TransportError('down')

        with pytest.raises(TransportError):
            LedgerEventSource(ledger_client, waiter, ADDRESS).read()

    def test_refresh_submits_and_waits(self, ledger_client, waiter):
        handle = TransactionHandle(tx_id='0xabc')
        receipt = Receipt(tx_id='0xabc', status=TransactionStatus.ACCEPTED)
        ledger_client.submit.return_value = handle
        waiter.await_outcome.return_value = receipt
        cancel = threading.Event()

        result = LedgerEventSource(ledger_client, waiter, ADDRESS).refresh(cancel_event=cancel)

        assert result is receipt
        ledger_client.submit.assert_called_once_with(
            ADDRESS, {'function': 'sync_events', 'args': [], 'value': 0}
        )
        waiter.await_outcome.assert_called_once_with(handle, cancel_event=cancel)

    def test_submit_failure_skips_waiting(self, ledger_client, waiter):
        ledger_client.submit.side_effect = TransportError('rejected by gateway')

        with pytest.raises(TransportError):
            LedgerEventSource(ledger_client, waiter, ADDRESS).refresh()
        waiter.await_outcome.assert_not_called()

    def test_close_closes_client(self, ledger_client, waiter):
        LedgerEventSource(ledger_client, waiter, ADDRESS).close()

        ledger_client.close.assert_called_once()


class TestSheetsEventSource:
    """Test cases for SheetsEventSource class."""

    ROWS = [
        ['Title', 'Description', 'Date', 'Time', 'Type', 'Discord'],
        ['Trivia', 'Fun', '1/6/2025', '2:00 PM', 'quiz', 'https://discord.gg/t'],
        ['Town Hall', '', '1/9/2025', '', 'announcements'],
    ]

    @responses.activate
    def test_read_primary_range(self):
        responses.add(
            responses.GET,
            f"{SHEET_URL}/%27Genlayer%20events%27%21A%3AZ",
            json={'values': self.ROWS},
            status=200
        )
        source = SheetsEventSource(sheet_id='sheet-123', api_key='key')

        events = source.read()

        assert [e.title for e in events] == ['Trivia', 'Town Hall']
        assert events[0].discord_link == 'https://discord.gg/t'
        assert events[1].type == EventType.ANNOUNCEMENTS
        assert events[1].time == 'TBD'
        assert 'key=key' in responses.calls[0].request.url

    @responses.activate
    def test_read_falls_back_to_first_tab(self):
        responses.add(
            responses.GET,
            f"{SHEET_URL}/%27Genlayer%20events%27%21A%3AZ",
            json={'error': {'code': 400, 'message': 'Unable to parse range: Genlayer events'}},
            status=400
        )
        responses.add(
            responses.GET,
            f"{SHEET_URL}/A%3AZ",
            json={'values': self.ROWS},
            status=200
        )
        source = SheetsEventSource(sheet_id='sheet-123', api_key='key')

        events = source.read()

        assert len(events) == 2
        assert len(responses.calls) == 2

    @responses.activate
    def test_read_http_error(self):
        responses.add(
            responses.GET,
            f"{SHEET_URL}/%27Genlayer%20events%27%21A%3AZ",
            json={'error': {'code': 403, 'message': 'forbidden'}},
            status=403
        )

        with pytest.raises(TransportError):
            SheetsEventSource(sheet_id='sheet-123', api_key='key').read()

    @responses.activate
    def test_read_connection_error(self):
        responses.add(
            responses.GET,
            f"{SHEET_URL}/%27Genlayer%20events%27%21A%3AZ",
            body=ConnectionError('unreachable')
        )

        with pytest.raises(TransportError):
            SheetsEventSource(sheet_id='sheet-123', api_key='key').read()

    @responses.activate
    def test_read_non_json(self):
        responses.add(
            responses.GET,
            f"{SHEET_URL}/%27Genlayer%20events%27%21A%3AZ",
            body='<html></html>',
            status=200
        )

        with pytest.raises(MalformedResponseError):
            SheetsEventSource(sheet_id='sheet-123', api_key='key').read()

    @responses.activate
    def test_read_empty_sheet(self):
        responses.add(
            responses.GET,
            f"{SHEET_URL}/%27Genlayer%20events%27%21A%3AZ",
            json={'range': 'A1:Z1'},
            status=200
        )

        assert SheetsEventSource(sheet_id='sheet-123', api_key='key').read() == []

    def test_refresh_is_noop(self):
        assert SheetsEventSource(sheet_id='sheet-123', api_key='key').refresh() is None
