"""
Tests for status text, A2S binary and RCON status table parsing.
"""

import pytest

from conftest import COD4_STATUS, OOB, SOURCE_STATUS, build_info_reply, build_players_reply
from gsclient.defs import GameType
from gsclient.errors import QueryError
from gsclient.parsers import (
    parse_challenge, parse_info, parse_players, parse_quake3_params,
    parse_quake3_status, parse_rcon_players, strip_print_header,
)


class TestQuake3Status:

    def test_players_from_literal_text(self):
        response = parse_quake3_status('17 client/playerstate\nscore ping name\n5 23 "Alice"\n10 40 "Bob"')
        assert [(p.name, p.score, p.ping) for p in response.players] == [
            ("Alice", 5, 23),
            ("Bob", 10, 40),
        ]
        assert response.player_count == 2

    def test_params_and_modeled_fields(self):
        data = (
            OOB + b"statusResponse\n"
            b"\\sv_hostname\\^1XI ^7CoD4\\mapname\\mp_crash\\fs_game\\mods/pml220"
            b"\\sv_maxclients\\24\\querid\\77\\final\\\\ignored\\x\n"
            b'0 50 "Dave"\n'
        )
        response = parse_quake3_status(data)
        assert response.server_name == "^1XI ^7CoD4"
        assert response.map == "mp_crash"
        assert response.mod == "mods/pml220"
        assert response.max_players == 24
        assert "querid" not in response.params
        assert "ignored" not in response.params

    def test_nul_bytes_stripped(self):
        response = parse_quake3_status(OOB + b"statusResponse\n\\mapname\\mp_b\x00og\n1 2 \"Al\x00ice\"\n")
        assert response.map == "mp_bog"
        assert response.players[0].name == "Alice"

    def test_invalid_maxclients_is_zero(self):
        response = parse_quake3_status("statusResponse\n\\sv_maxclients\\lots\n")
        assert response.max_players == 0

    def test_unparsable_rows_skipped(self):
        response = parse_quake3_status('x\n\\mapname\\mp_crash\ngarbage row\n3 70 "Carol"\n\n')
        assert [p.name for p in response.players] == ["Carol"]

    def test_negative_score(self):
        response = parse_quake3_status('x\n\\a\\b\n-4 120 "Dan"\n')
        assert response.players[0].score == -4

    def test_single_line_raises(self):
        with pytest.raises(QueryError):
            parse_quake3_status(OOB + b"statusResponse")

    def test_key_without_value(self):
        assert parse_quake3_params("\\g_gametype\\war\\sv_hostname") == {
            "g_gametype": "war",
            "sv_hostname": "",
        }

    def test_print_header(self):
        assert strip_print_header("\xff\xff\xff\xffprint\nmap: mp_crash") == "map: mp_crash"
        assert strip_print_header("no header here") == "no header here"


class TestA2S:

    def test_players_carl(self):
        players = parse_players(build_players_reply([("Carl", 7, 120.5)]))
        assert len(players) == 1
        assert players[0].name == "Carl"
        assert players[0].score == 7
        assert players[0].duration == pytest.approx(120.5)

    def test_truncated_record_keeps_complete_ones(self):
        data = build_players_reply([("Carl", 7, 1.0), ("Dina", 3, 2.0)])
        players = parse_players(data[:-6])
        assert [p.name for p in players] == ["Carl"]

    def test_count_larger_than_records(self):
        players = parse_players(build_players_reply([("Carl", 7, 1.0)], count=5))
        assert len(players) == 1

    def test_players_wrong_header(self):
        with pytest.raises(QueryError):
            parse_players(OOB + b"I\x00")

    def test_info(self):
        params = parse_info(build_info_reply())
        assert params["hostname"] == "XI Insurgency"
        assert params["mapname"] == "ministry"
        assert params["mod"] == "insurgency"
        assert params["modname"] == "Insurgency"
        assert params["appid"] == "17700"
        assert params["numplayers"] == "3"
        assert params["maxplayers"] == "32"
        assert params["servertype"] == "d"
        assert params["secureserver"] == "1"
        assert params["version"] == "2.4.0.5"

    def test_info_truncated(self):
        with pytest.raises(QueryError):
            parse_info(build_info_reply()[:20])

    def test_challenge_bytes(self):
        assert parse_challenge(OOB + b"A\x01\x02\x03\x04") == b"\x01\x02\x03\x04"

    def test_challenge_too_short(self):
        with pytest.raises(QueryError):
            parse_challenge(OOB + b"A\x01")


class TestRconStatus:

    def test_cod4_rows(self):
        players = parse_rcon_players(GameType.CallOfDuty4, COD4_STATUS)
        assert [p.name for p in players] == ["^1Dave^7", "[XI]Erin"]
        dave = players[0]
        assert dave.slot_num == "0"
        assert dave.score == "12"
        assert dave.ping == "48"
        assert dave.guid == "0123456789abcdef0123456789abcdef"
        assert dave.ip_address == "198.51.100.7"
        assert dave.qport == "1234"
        assert dave.rate == "25000"

    def test_cod2_numeric_guid(self):
        text = (
            "map: mp_toujane\nnum score ping guid name lastmsg address qport rate\n---\n"
            "  4    20   60 1234567 Gus                0 198.51.100.9:28960  999 5000\n"
        )
        players = parse_rcon_players(GameType.CallOfDuty2, text)
        assert len(players) == 1
        assert players[0].guid == "1234567"
        assert players[0].name == "Gus"

    def test_cod4_rejects_short_guid(self):
        text = "h\nh\nh\n  4    20   60 1234567 Gus                0 198.51.100.9:28960  999 5000\n"
        assert parse_rcon_players(GameType.CallOfDuty4, text) == []

    def test_crlf_lines(self):
        players = parse_rcon_players(GameType.CallOfDuty4, COD4_STATUS.replace("\n", "\r\n"))
        assert len(players) == 2

    def test_source_rows(self):
        players = parse_rcon_players(GameType.Insurgency, SOURCE_STATUS)
        assert [p.name for p in players] == ["Eve", "Frank the Tank"]
        eve = players[0]
        assert eve.slot_num == "2"
        assert eve.guid == "STEAM_1:0:12345"
        assert eve.ping == "60"
        assert eve.rate == "80000"
        assert eve.ip_address == "203.0.113.5"

    def test_empty_output(self):
        assert parse_rcon_players(GameType.CallOfDuty4, "") == []

    def test_unknown_grammar(self):
        with pytest.raises(ValueError):
            parse_rcon_players(GameType.Minecraft, COD4_STATUS)
