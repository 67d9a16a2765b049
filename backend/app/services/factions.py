UNKNOWN = "Unknown"

FACTION_NAMES = (
    "Chaos",
    "Dark Eldar",
    "Eldar",
    "Imperial Guard",
    "Necrons",
    "Orks",
    "Sisters of Battle",
    "Space Marines",
    "Tau",
)

# Order matters: "dark_eldar" must win over "eldar".
_NAME_MARKERS = (
    ("chaos_marine", "Chaos"),
    ("dark_eldar", "Dark Eldar"),
    ("eldar", "Eldar"),
    ("guard", "Imperial Guard"),
    ("necron", "Necrons"),
    ("ork", "Orks"),
    ("sisters", "Sisters of Battle"),
    ("space_marine", "Space Marines"),
    ("tau", "Tau"),
)

_MATCH_TYPES = ("1v1", "2v2", "3v3", "4v4")


def parse_faction_from_name(name: str) -> str:
    for marker, faction in _NAME_MARKERS:
        if marker in name:
            return faction
    return UNKNOWN


def parse_match_type_from_name(name: str) -> str:
    for match_type in _MATCH_TYPES:
        if name.startswith(match_type):
            return match_type
    if "Custom" in name:
        return "Custom"
    return UNKNOWN


def is_known_faction(faction: str | None) -> bool:
    return faction in FACTION_NAMES
