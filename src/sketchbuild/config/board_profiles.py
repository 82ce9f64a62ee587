"""
Board profiles for sketchbuild.

A board selector is the user-facing name of a board ("arduino-nano"). It maps
to the arduino-cli core that must be installed and to an ordered list of
variant candidates (exact FQBNs). Boards that ship with more than one
bootloader generation have several candidates, most common bootloader first.

Usage:
    profile = get_board_profile("arduino-nano")
    for candidate in profile.candidates:
        print(candidate.fqbn)
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

ESP32_INDEX_URL = "https://espressif.github.io/arduino-esp32/package_esp32_index.json"
MINICORE_INDEX_URL = "https://mcudude.github.io/MiniCore/package_MCUdude_MiniCore_index.json"

# Artifact formats produced by a profile
ARTIFACT_HEX = "hex"
ARTIFACT_BIN_BUNDLE = "bin_bundle"


class BoardProfileError(Exception):
    """Exception raised for board profile errors."""

    pass


class UnknownBoardError(BoardProfileError):
    """Raised when a board selector has no profile."""

    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(
            f"Unknown board: {selector!r}. Known boards: {', '.join(known_selectors())}"
        )


@dataclass(frozen=True)
class CoreRequirement:
    """An arduino-cli core a board needs.

    Attributes:
        name: Core identifier (e.g., "arduino:avr")
        version: Exact version to pin, or None for any installed version
        index_url: Package index for cores outside the default index
    """

    name: str
    version: Optional[str] = None
    index_url: Optional[str] = None

    @property
    def spec(self) -> str:
        """Core reference as arduino-cli accepts it (name[@version])."""
        return f"{self.name}@{self.version}" if self.version else self.name


@dataclass(frozen=True)
class VariantCandidate:
    """One exact target a board selector may resolve to.

    Attributes:
        fqbn: Fully qualified board name, options included
        label: Short human-readable description
        build_properties: Extra --build-property values for this variant
    """

    fqbn: str
    label: str = ""
    build_properties: Tuple[str, ...] = ()

    @property
    def package(self) -> str:
        """The vendor:arch part of the FQBN."""
        return ":".join(self.fqbn.split(":")[:2])


@dataclass(frozen=True)
class BoardProfile:
    """Everything needed to build and flash one board selector."""

    selector: str
    name: str
    core: CoreRequirement
    candidates: Tuple[VariantCandidate, ...]
    artifact_format: str = ARTIFACT_HEX
    large_target: bool = False
    chip: Optional[str] = None
    aliases: Tuple[str, ...] = field(default=())

    def candidates_for(self, variant_override: Optional[str] = None) -> List[VariantCandidate]:
        """Get the ordered candidate list, honoring an explicit override.

        Args:
            variant_override: Exact FQBN to use instead of the profile's list

        Returns:
            Ordered list of variant candidates

        Raises:
            BoardProfileError: If the override belongs to a different core package
        """
        if not variant_override:
            return list(self.candidates)

        override = VariantCandidate(fqbn=variant_override.strip(), label="override")
        if override.package != self.core.name:
            raise BoardProfileError(
                f"Variant {override.fqbn!r} does not belong to core {self.core.name!r} "
                f"required by board {self.selector!r}"
            )
        return [override]


_AVR_CORE = CoreRequirement("arduino:avr")
_ESP32_CORE = CoreRequirement("esp32:esp32", version="2.0.14", index_url=ESP32_INDEX_URL)
_MINICORE = CoreRequirement("MiniCore:avr", index_url=MINICORE_INDEX_URL)


def _esp32(selector: str, chip: str, name: str, aliases: Tuple[str, ...] = ()) -> BoardProfile:
    return BoardProfile(
        selector=selector,
        name=name,
        core=_ESP32_CORE,
        candidates=(VariantCandidate(f"esp32:esp32:{chip}", label=chip),),
        artifact_format=ARTIFACT_BIN_BUNDLE,
        large_target=True,
        chip=chip,
        aliases=aliases,
    )


BOARD_PROFILES: Dict[str, BoardProfile] = {
    "arduino-uno": BoardProfile(
        selector="arduino-uno",
        name="Arduino Uno",
        core=_AVR_CORE,
        candidates=(VariantCandidate("arduino:avr:uno", label="optiboot"),),
        chip="atmega328p",
    ),
    "arduino-nano": BoardProfile(
        selector="arduino-nano",
        name="Arduino Nano",
        core=_AVR_CORE,
        candidates=(
            VariantCandidate("arduino:avr:nano:cpu=atmega328", label="new bootloader"),
            VariantCandidate("arduino:avr:nano:cpu=atmega328old", label="old bootloader"),
        ),
        chip="atmega328p",
    ),
    "arduino-mega": BoardProfile(
        selector="arduino-mega",
        name="Arduino Mega 2560",
        core=_AVR_CORE,
        candidates=(VariantCandidate("arduino:avr:mega:cpu=atmega2560", label="stk500v2"),),
        chip="atmega2560",
    ),
    "arduino-leonardo": BoardProfile(
        selector="arduino-leonardo",
        name="Arduino Leonardo",
        core=_AVR_CORE,
        candidates=(VariantCandidate("arduino:avr:leonardo", label="caterina"),),
        chip="atmega32u4",
    ),
    "esp32": _esp32("esp32", "esp32s3", "ESP32-S3 (default)", aliases=("esp32-s3",)),
    "esp32-c3": _esp32("esp32-c3", "esp32c3", "ESP32-C3"),
    "esp32-s2": _esp32("esp32-s2", "esp32s2", "ESP32-S2"),
    "esp32-dev": _esp32("esp32-dev", "esp32", "ESP32 DevKit"),
    "uno-x": BoardProfile(
        selector="uno-x",
        name="Uno X (MiniCore ATmega328)",
        core=_MINICORE,
        candidates=(
            VariantCandidate(
                "MiniCore:avr:328:bootloader=uart0,variant=modelP,BOD=2v7,LTO=Os,clock=16MHz_external",
                label="urboot uart0 16MHz",
            ),
        ),
        chip="atmega328p",
        aliases=("unox",),
    ),
}

_ALIASES: Dict[str, str] = {
    alias: selector
    for selector, profile in BOARD_PROFILES.items()
    for alias in profile.aliases
}


def normalize_selector(selector: str) -> str:
    """Normalize a board selector for lookup."""
    return selector.strip().lower()


def get_board_profile(selector: str) -> BoardProfile:
    """Look up the profile for a board selector.

    Args:
        selector: Board selector (e.g., "arduino-uno", "esp32-c3")

    Returns:
        The matching BoardProfile

    Raises:
        UnknownBoardError: If the selector is not known
    """
    if not selector or not selector.strip():
        raise UnknownBoardError(selector or "")

    key = normalize_selector(selector)
    key = _ALIASES.get(key, key)
    profile = BOARD_PROFILES.get(key)
    if profile is None:
        raise UnknownBoardError(selector)
    return profile


def known_selectors() -> List[str]:
    """All accepted selectors, aliases included, sorted."""
    return sorted(list(BOARD_PROFILES.keys()) + list(_ALIASES.keys()))
