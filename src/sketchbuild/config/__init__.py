"""Configuration modules for sketchbuild."""

from .board_profiles import (
    ARTIFACT_BIN_BUNDLE,
    ARTIFACT_HEX,
    BOARD_PROFILES,
    BoardProfile,
    BoardProfileError,
    CoreRequirement,
    UnknownBoardError,
    VariantCandidate,
    get_board_profile,
    known_selectors,
)
from .settings import OutputLimits, TimeoutBudget, ToolchainSettings

__all__ = [
    "ARTIFACT_BIN_BUNDLE",
    "ARTIFACT_HEX",
    "BOARD_PROFILES",
    "BoardProfile",
    "BoardProfileError",
    "CoreRequirement",
    "UnknownBoardError",
    "VariantCandidate",
    "get_board_profile",
    "known_selectors",
    "OutputLimits",
    "TimeoutBudget",
    "ToolchainSettings",
]
