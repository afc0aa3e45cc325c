"""
Tests for voteflow_core.backend — remote data model and the REST client.

The HTTP session is replaced with a mock so no node is needed.
"""

from unittest.mock import MagicMock

import pytest
import requests

from voteflow_core.backend import (
    AccountSnapshot,
    FragmentLog,
    FragmentState,
    FragmentStatus,
    RestLedgerClient,
    RestSettings,
)
from voteflow_core.errors import BackendError
from voteflow_core.settings import BlockDate


def _response(payload=None, status=200, text=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    resp.text = text if text is not None else str(payload)
    return resp


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    return RestLedgerClient("127.0.0.1:8080", session=session)


def _called_url(session):
    args, _ = session.request.call_args
    return args[1]


# ═══════════════════════════════════════════════════════════════════
#  Data model
# ═══════════════════════════════════════════════════════════════════

class TestAccountSnapshot:
    def test_single_counter(self):
        snap = AccountSnapshot.from_dict({"value": 10, "counter": 3})
        assert (snap.value, snap.counter) == (10, 3)

    def test_lane_counters(self):
        snap = AccountSnapshot.from_dict({"value": 10, "counters": [4, 0, 0]})
        assert snap.counter == 4

    def test_missing_counter_defaults_to_zero(self):
        assert AccountSnapshot.from_dict({"value": 1}).counter == 0


class TestFragmentStatus:
    def test_pending_string(self):
        status = FragmentStatus.from_json("Pending")
        assert status.state is FragmentState.PENDING
        assert not status.is_terminal

    def test_rejected(self):
        status = FragmentStatus.from_json({"Rejected": {"reason": "bad counter"}})
        assert status.state is FragmentState.REJECTED
        assert status.reason == "bad counter"
        assert status.is_terminal
        assert str(status) == "Rejected(bad counter)"

    def test_in_a_block(self):
        status = FragmentStatus.from_json({"InABlock": {"date": "3.14", "block": "ff"}})
        assert status.state is FragmentState.IN_A_BLOCK
        assert status.date == BlockDate(3, 14)
        assert status.block == "ff"

    @pytest.mark.parametrize("raw", ["Lost", {"a": 1, "b": 2}, 42])
    def test_unrecognised(self, raw):
        with pytest.raises(ValueError):
            FragmentStatus.from_json(raw)

    def test_log_entry(self):
        log = FragmentLog.from_dict({
            "fragment_id": "ab",
            "status": {"Rejected": {"reason": "x"}},
            "received_from": "Rest",
        })
        assert log.fragment_id == "ab"
        assert log.status.reason == "x"
        assert log.received_from == "Rest"


# ═══════════════════════════════════════════════════════════════════
#  REST client
# ═══════════════════════════════════════════════════════════════════

class TestRestClient:
    def test_scheme_added(self, client):
        assert client.address == "http://127.0.0.1:8080"

    def test_custom_headers_applied(self, session):
        RestLedgerClient("node", RestSettings(headers={"X-Api-Key": "k"}), session=session)
        assert session.headers["X-Api-Key"] == "k"

    def test_get_settings(self, client, session):
        session.request.return_value = _response({
            "block0Hash": "ab", "block0Time": 100, "slotDuration": 2,
            "slotsPerEpoch": 10, "fees": {"constant": 1, "coefficient": 2},
        })
        settings = client.get_settings()
        assert settings.slots_per_epoch == 10
        assert settings.fees.coefficient == 2
        assert _called_url(session) == "http://127.0.0.1:8080/api/v0/settings"

    def test_get_account_state(self, client, session):
        session.request.return_value = _response({"value": 50, "counter": 2})
        snap = client.get_account_state("abcd")
        assert snap == AccountSnapshot(50, 2)
        assert _called_url(session).endswith("/api/v0/account/abcd")

    def test_not_found_is_backend_error(self, client, session):
        session.request.return_value = _response(None, status=404, text="not found")
        with pytest.raises(BackendError) as excinfo:
            client.get_account_state("abcd")
        assert excinfo.value.status_code == 404
        assert excinfo.value.body == "not found"

    def test_transport_failure_is_backend_error(self, client, session):
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(BackendError):
            client.get_settings()

    def test_invalid_json_is_backend_error(self, client, session):
        session.request.return_value = _response(ValueError("no json"), text="<html>")
        with pytest.raises(BackendError):
            client.get_settings()

    def test_submit_fragment(self, client, session):
        session.request.return_value = _response(text='"abc123"\n')
        assert client.submit_fragment(b"\x01\x02") == "abc123"
        args, kwargs = session.request.call_args
        assert args[0] == "POST"
        assert kwargs["data"] == b"\x01\x02"
        assert kwargs["headers"]["Content-Type"] == "application/octet-stream"

    def test_https_for_post(self, session):
        client = RestLedgerClient("http://node:80", RestSettings(use_https_for_post=True),
                                  session=session)
        session.request.return_value = _response(text="id")
        client.submit_fragment(b"x")
        assert _called_url(session) == "https://node:80/api/v0/message"
        session.request.return_value = _response({"value": 0, "counter": 0})
        client.get_account_state("a")
        assert _called_url(session).startswith("http://")

    def test_submit_fragments(self, client, session):
        session.request.return_value = _response({"accepted": ["a", "b"], "rejected": []})
        assert client.submit_fragments([b"\x01", b"\x02"]) == ["a", "b"]
        _, kwargs = session.request.call_args
        assert kwargs["json"] == {"fail_fast": True, "fragments": ["01", "02"]}

    def test_submit_fragments_empty(self, client, session):
        assert client.submit_fragments([]) == []
        session.request.assert_not_called()

    def test_submit_fragments_rejection(self, client, session):
        session.request.return_value = _response(
            {"accepted": ["a"], "rejected": [{"id": "b", "reason": "FragmentInvalid"}]}
        )
        with pytest.raises(BackendError):
            client.submit_fragments([b"\x01", b"\x02"])

    def test_fragment_logs(self, client, session):
        session.request.return_value = _response([
            {"fragment_id": "a", "status": "Pending"},
            {"fragment_id": "b", "status": {"InABlock": {"date": "1.2", "block": "x"}}},
        ])
        logs = client.get_fragment_logs()
        assert set(logs) == {"a", "b"}
        assert logs["b"].status.state is FragmentState.IN_A_BLOCK

    def test_malformed_fragment_logs(self, client, session):
        session.request.return_value = _response([{"status": "Pending"}])
        with pytest.raises(BackendError):
            client.get_fragment_logs()

    def test_list_proposals(self, client, session):
        session.request.return_value = _response([{
            "chain_proposal_id": "p1",
            "chain_voteplan_id": "vp",
            "chain_proposal_index": 4,
            "chain_vote_options": {"yes": 0, "no": 1},
            "proposal_title": "Fund it",
        }])
        (proposal,) = client.list_proposals()
        assert proposal.proposal_id == "p1"
        assert proposal.proposal_index == 4
        assert proposal.choice_for("no") == 1

    def test_vote_statuses(self, client, session):
        session.request.return_value = _response([{"vote_plan_id": "vp", "votes": [0, 3]}])
        (status,) = client.get_vote_statuses("acc")
        assert status.votes == (0, 3)
        assert _called_url(session).endswith("/api/v1/votes/plan/account-votes/acc")

    @pytest.mark.parametrize("payload", [
        ["not a dict"],
        [{"vote_plan_id": "vp", "votes": ["x"]}],
        17,
    ])
    def test_malformed_vote_statuses(self, client, session, payload):
        session.request.return_value = _response(payload)
        with pytest.raises(BackendError):
            client.get_vote_statuses("acc")

    @pytest.mark.parametrize("payload", [["not a dict"], None])
    def test_malformed_proposals(self, client, session, payload):
        session.request.return_value = _response(payload)
        with pytest.raises(BackendError):
            client.list_proposals()

    def test_malformed_account_state(self, client, session):
        session.request.return_value = _response({"value": "lots", "counter": 0})
        with pytest.raises(BackendError):
            client.get_account_state("abcd")

    def test_context_manager_closes_session(self, session):
        with RestLedgerClient("node", session=session) as client:
            assert client.session is session
        session.close.assert_called_once()

    def test_debug_logging(self, session, caplog):
        client = RestLedgerClient("node", RestSettings(enable_debug=True), session=session)
        session.request.return_value = _response({"value": 0, "counter": 0})
        with caplog.at_level("DEBUG", logger="voteflow.backend"):
            client.get_account_state("a")
        assert any("/api/v0/account/a" in r.getMessage() for r in caplog.records)
