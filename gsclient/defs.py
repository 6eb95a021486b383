"""
Game types, engine families and protocol constants.

Every supported game belongs to one engine family; the family decides which
query and RCON implementation talks to it.
"""

import enum
import os


# --- Protocol constants ---

# Quake3-derived engines prefix every connectionless datagram with 0xFFFFFFFF
OOB_PREFIX = b"\xff\xff\xff\xff"

# Source engine A2S headers
A2S_INFO = b"T"
A2S_INFO_PAYLOAD = b"Source Engine Query\x00"
A2S_INFO_RESPONSE = ord("I")
A2S_PLAYER = b"U"
A2S_PLAYER_RESPONSE = ord("D")
S2C_CHALLENGE = ord("A")
A2S_NO_CHALLENGE = b"\xff\xff\xff\xff"

# Source query replies: whole (-1) or split (-2) packets
SOURCE_WHOLE = -1
SOURCE_SPLIT = -2
SOURCE_PACKET_SIZE = 1400

# Source RCON packet types
SERVERDATA_AUTH = 3
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_AUTH_RESPONSE = 2
SERVERDATA_RESPONSE_VALUE = 0

SOURCE_RCON_AUTH_REQUEST_ID = 1
SOURCE_RCON_FIRST_COMMAND_ID = 2
SOURCE_RCON_AUTH_FAILED_ID = -1


# --- Timeouts (seconds, overridable via env) ---

QUERY_TIMEOUT = float(os.environ.get("QUERY_TIMEOUT", "5"))
RCON_TIMEOUT = float(os.environ.get("RCON_TIMEOUT", "15"))
# Pause before asking a slow engine whether more datagrams are queued
RCON_SETTLE_DELAY = float(os.environ.get("RCON_SETTLE_DELAY", "1.0"))
SOURCE_RCON_CONNECT_TIMEOUT = float(os.environ.get("SOURCE_RCON_CONNECT_TIMEOUT", "5"))
SOURCE_RCON_RESPONSE_TIMEOUT = float(os.environ.get("SOURCE_RCON_RESPONSE_TIMEOUT", "10"))
SOURCE_RCON_POLL_INTERVAL = float(os.environ.get("SOURCE_RCON_POLL_INTERVAL", "0.1"))
RCON_RESYNC_INTERVAL = float(os.environ.get("RCON_RESYNC_INTERVAL", "30"))

# status output starts with: map line, column header, dashed separator
STATUS_HEADER_LINES = 3


class EngineFamily(enum.Enum):
    QUAKE3 = "quake3"
    SOURCE = "source"


class GameType(enum.IntEnum):
    Unknown = 0
    CallOfDuty2 = 1
    CallOfDuty4 = 2
    CallOfDuty5 = 3
    Insurgency = 4
    ArkSurvivalEvolved = 5
    Battlefield1 = 6
    Battlefield3 = 7
    Battlefield4 = 8
    Battlefield5 = 9
    BattlefieldBadCompany2 = 10
    CrysisWars = 11
    Left4Dead2 = 12
    Minecraft = 13
    PlayerUnknownsBattleground = 14
    RisingStormVietnam = 15
    Rust = 16
    WarThunder = 17
    WorldOfWarships = 18
    WorldWar3 = 19
    UnrealTournament2004 = 20
    Arma = 21
    Arma2 = 22
    Arma3 = 23

    @property
    def short_name(self) -> str:
        return SHORT_NAMES.get(self, self.name)

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES.get(self, self.name)

    @classmethod
    def parse(cls, value) -> "GameType":
        """
        Accept a GameType, its int value, its name or its short name.

        Anything unrecognised maps to GameType.Unknown so the factories can
        reject it with an explicit unsupported-game error.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return cls.Unknown
        text = str(value).strip()
        if text.isdigit():
            return cls.parse(int(text))
        lowered = text.lower()
        for member in cls:
            if lowered in (member.name.lower(), member.short_name.lower()):
                return member
        return cls.Unknown


SHORT_NAMES = {
    GameType.CallOfDuty2: "COD2",
    GameType.CallOfDuty4: "COD4",
    GameType.CallOfDuty5: "COD5",
    GameType.Insurgency: "INS",
}

DISPLAY_NAMES = {
    GameType.CallOfDuty2: "Call of Duty 2",
    GameType.CallOfDuty4: "Call of Duty 4",
    GameType.CallOfDuty5: "Call of Duty 5",
    GameType.Insurgency: "Insurgency",
}

# Fixed lookup: only these games have a protocol implementation
ENGINE_FAMILIES = {
    GameType.CallOfDuty2: EngineFamily.QUAKE3,
    GameType.CallOfDuty4: EngineFamily.QUAKE3,
    GameType.CallOfDuty5: EngineFamily.QUAKE3,
    GameType.Insurgency: EngineFamily.SOURCE,
}
