"""
Tests for name normalization and query/RCON status aggregation.
"""

from unittest.mock import MagicMock

import pytest

from gsclient.defs import GameType
from gsclient.errors import RconError
from gsclient.models import QueryPlayer, QueryResponse, RconPlayer, ServerEndpoint, normalize_name
from gsclient.status import GameServerStatusHelper, StatusHelperRegistry, merge_status


ENDPOINT = ServerEndpoint(GameType.CallOfDuty4, "192.0.2.10", 28960, "secret", server_id="cod4-1")


def query_response(*names):
    players = [QueryPlayer(name=name, score=i, ping=40 + i) for i, name in enumerate(names)]
    return QueryResponse(server_name="XI", map="mp_crash", max_players=24,
                         player_count=len(players), players=players)


def rcon_player(name, guid, num="0"):
    return RconPlayer(slot_num=num, guid=guid, name=name, ip_address="198.51.100.7", ping="999", rate="25000")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestNormalizeName:

    @pytest.mark.parametrize("raw,expected", [
        ("Dave", "dave"),
        ("^1Da^7ve", "dave"),
        ("  [XI]Erin ", "erin"),
        ("[XI] ^2Erin", "erin"),
        ("[A][B]Frank", "[b]frank"),
        ("ＤＡＶＥ", "dave"),
        ("Straße", "strasse"),
        ("", ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_name(raw) == expected


class TestMergeStatus:

    def test_matching_player_gets_rcon_details(self):
        status = merge_status(query_response("Dave", "Nobody"), [rcon_player("Dave", "ABC123", num="4")])

        dave, nobody = status.players
        assert dave.name == "Dave"
        assert dave.guid == "ABC123"
        assert dave.num == "4"
        assert dave.ip_address == "198.51.100.7"
        assert dave.rate == "25000"
        assert nobody.guid == ""
        assert nobody.ip_address == ""

    def test_name_score_ping_stay_from_query(self):
        status = merge_status(query_response("Dave"), [rcon_player("^3DAVE", "ABC123")])
        assert status.players[0].name == "Dave"
        assert status.players[0].score == 0
        assert status.players[0].ping == 40
        assert status.players[0].guid == "ABC123"

    def test_unmatched_rcon_players_not_surfaced(self):
        status = merge_status(query_response("Dave"), [rcon_player("Ghost", "XYZ")])
        assert [p.name for p in status.players] == ["Dave"]
        assert status.players[0].guid == ""

    def test_endpoint_fields(self):
        status = merge_status(query_response(), [], ENDPOINT)
        payload = status.to_dict()
        assert payload["server_id"] == "cod4-1"
        assert payload["game_type"] == "CallOfDuty4"
        assert payload["map"] == "mp_crash"
        assert payload["players"] == []


class TestGameServerStatusHelper:

    def make_helper(self, responses, rcon_players=None, rcon=True):
        query_client = MagicMock()
        query_client.get_server_status.side_effect = list(responses)
        rcon_client = None
        if rcon:
            rcon_client = MagicMock()
            rcon_client.get_players.return_value = rcon_players or []
        clock = FakeClock()
        helper = GameServerStatusHelper(ENDPOINT, query_client, rcon_client, resync_interval=30, clock=clock)
        return helper, rcon_client, clock

    def test_first_call_syncs_rcon(self):
        helper, rcon_client, _ = self.make_helper([query_response("Dave")], [rcon_player("Dave", "ABC123")])

        status = helper.get_server_status()

        assert status.players[0].guid == "ABC123"
        assert rcon_client.get_players.call_count == 1

    def test_known_players_skip_rcon(self):
        helper, rcon_client, clock = self.make_helper(
            [query_response("Dave"), query_response("Dave")],
            [rcon_player("Dave", "ABC123")],
        )
        helper.get_server_status()
        clock.now += 5

        status = helper.get_server_status()

        assert rcon_client.get_players.call_count == 1
        assert status.players[0].guid == "ABC123"

    def test_new_player_triggers_sync(self):
        helper, rcon_client, clock = self.make_helper(
            [query_response("Dave"), query_response("Dave", "Erin")],
            [rcon_player("Dave", "ABC123")],
        )
        helper.get_server_status()
        rcon_client.get_players.return_value = [rcon_player("Dave", "ABC123"), rcon_player("Erin", "DEF456", num="1")]
        clock.now += 5

        status = helper.get_server_status()

        assert rcon_client.get_players.call_count == 2
        assert [p.guid for p in status.players] == ["ABC123", "DEF456"]

    def test_unmatched_player_keeps_resyncing(self):
        helper, rcon_client, clock = self.make_helper([query_response("Dave")] * 2, [])
        helper.get_server_status()
        clock.now += 1
        helper.get_server_status()
        assert rcon_client.get_players.call_count == 2

    def test_interval_triggers_sync(self):
        helper, rcon_client, clock = self.make_helper(
            [query_response("Dave")] * 2, [rcon_player("Dave", "ABC123")],
        )
        helper.get_server_status()
        clock.now += 31

        helper.get_server_status()

        assert rcon_client.get_players.call_count == 2

    def test_departed_players_dropped(self):
        helper, _, _ = self.make_helper(
            [query_response("Dave", "Erin"), query_response("Erin")],
            [rcon_player("Dave", "ABC123"), rcon_player("Erin", "DEF456")],
        )
        helper.get_server_status()
        status = helper.get_server_status()
        assert [p.name for p in status.players] == ["Erin"]
        assert status.players[0].guid == "DEF456"

    def test_query_only_without_rcon(self):
        helper, _, _ = self.make_helper([query_response("Dave")], rcon=False)
        status = helper.get_server_status()
        assert status.players[0].guid == ""

    def test_rcon_failure_serves_query_view(self):
        helper, rcon_client, _ = self.make_helper([query_response("Dave")])
        rcon_client.get_players.side_effect = RconError("down")

        status = helper.get_server_status()

        assert [p.name for p in status.players] == ["Dave"]
        assert status.players[0].guid == ""


class TestStatusHelperRegistry:

    def test_helper_cached_per_server(self):
        query_clients, rcon_clients = MagicMock(), MagicMock()
        registry = StatusHelperRegistry(query_clients, rcon_clients)

        assert registry.get(ENDPOINT) is registry.get(ENDPOINT)
        assert query_clients.get.call_count == 1

    def test_no_password_no_rcon_client(self):
        query_clients, rcon_clients = MagicMock(), MagicMock()
        registry = StatusHelperRegistry(query_clients, rcon_clients)
        endpoint = ServerEndpoint(GameType.CallOfDuty2, "192.0.2.30", 28961, server_id="cod2-norcon")

        helper = registry.get(endpoint)

        assert helper.rcon_client is None
        rcon_clients.get.assert_not_called()

    def test_close_all(self):
        query_clients, rcon_clients = MagicMock(), MagicMock()
        registry = StatusHelperRegistry(query_clients, rcon_clients)
        registry.get(ENDPOINT)

        registry.close_all()

        rcon_clients.close_all.assert_called_once()
        query_clients.close_all.assert_called_once()
