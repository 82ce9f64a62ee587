"""Core and library dependency resolution for sketchbuild.

This module makes sure the arduino-cli core a board needs, and the libraries a
sketch includes, are installed before compilation.

Resolution for every component is three-tiered:
    1. In-memory cache of confirmed installs (no subprocess)
    2. Query arduino-cli (`core list` / `lib list`)
    3. Install, upgrade, or uninstall-then-install

The cache lives as long as the resolver instance. arduino-cli's own package
store (the data directory) is the source of truth on a cold cache. Installs of
the same component are serialized by a per-component lock; the cache is
re-checked once the lock is held, so concurrent requests share one install.

Core failures are fatal (DependencyInstallError). Library failures are logged,
returned as warnings and left uncached; a missing library surfaces later as a
compiler error.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from ..config.board_profiles import CoreRequirement, get_board_profile
from ..config.settings import ToolchainSettings
from .cli_invoker import ArduinoCli, ToolchainTimeoutError
from .library_detector import detect_required_libraries


class ComponentKind(Enum):
    """Kinds of toolchain components."""

    CORE = "core"
    LIBRARY = "library"


class InstallState(Enum):
    """Install state of a component as reported by arduino-cli."""

    UNKNOWN = "unknown"
    NOT_INSTALLED = "not_installed"
    INSTALLED_ANY_VERSION = "installed_any_version"
    INSTALLED_EXACT_VERSION = "installed_exact_version"


@dataclass(frozen=True)
class ComponentId:
    """Identity of a core or library.

    The package index URL is carried along for installs but is not part of
    the identity.
    """

    kind: ComponentKind
    name: str
    version: Optional[str] = None
    index_url: Optional[str] = field(default=None, compare=False)

    @property
    def spec(self) -> str:
        """Reference as arduino-cli accepts it (name[@version])."""
        return f"{self.name}@{self.version}" if self.version else self.name

    @classmethod
    def core(cls, requirement: CoreRequirement) -> "ComponentId":
        """Create a core component from a board's core requirement."""
        return cls(
            kind=ComponentKind.CORE,
            name=requirement.name,
            version=requirement.version,
            index_url=requirement.index_url,
        )

    @classmethod
    def library(cls, name: str, version: Optional[str] = None) -> "ComponentId":
        """Create a library component."""
        return cls(kind=ComponentKind.LIBRARY, name=name, version=version)

    def __str__(self) -> str:
        return f"{self.kind.value} {self.spec}"


class DependencyInstallError(Exception):
    """Raised when a core cannot be installed, upgraded or reinstalled."""

    def __init__(self, component: ComponentId, message: str, diagnostics: str = ""):
        self.component = component
        self.diagnostics = diagnostics
        super().__init__(message)


class InstallationCache:
    """Thread-safe record of components confirmed installed.

    Entries are only ever added; clear() exists for teardown and tests.
    """

    def __init__(self):
        self._entries: Dict[ComponentId, InstallState] = {}
        self._lock = threading.Lock()

    def __contains__(self, component: ComponentId) -> bool:
        with self._lock:
            return component in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, component: ComponentId) -> Optional[InstallState]:
        with self._lock:
            return self._entries.get(component)

    def record(self, component: ComponentId, state: InstallState) -> None:
        with self._lock:
            self._entries[component] = state

    def components(self, kind: Optional[ComponentKind] = None) -> List[ComponentId]:
        """Cached components, optionally filtered by kind."""
        with self._lock:
            return [c for c in self._entries if kind is None or c.kind == kind]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@dataclass
class LibraryOutcome:
    """Result of ensuring one library."""

    name: str
    installed: bool
    from_cache: bool = False
    newly_installed: bool = False
    warning: Optional[str] = None


@dataclass
class DependencyReport:
    """Result of ensuring all dependencies of a sketch."""

    board_selector: str
    core: ComponentId
    libraries: List[LibraryOutcome] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        """Warnings from libraries that could not be installed."""
        return [lib.warning for lib in self.libraries if lib.warning]


def parse_installed_cores(stdout: str) -> Dict[str, Optional[str]]:
    """Parse `arduino-cli core list` output.

    Understands the JSON shape of arduino-cli 1.x ({"platforms": [...]}),
    the bare JSON list of 0.x, and falls back to the text table.

    Args:
        stdout: Output of `core list` (with or without --format json)

    Returns:
        Mapping of lowercase core ID to installed version (None if unknown)
    """
    cores: Dict[str, Optional[str]] = {}

    try:
        data = json.loads(stdout) if stdout.strip() else {}
    except json.JSONDecodeError:
        for line in stdout.splitlines():
            parts = line.split()
            if not parts or ":" not in parts[0]:
                continue
            cores[parts[0].lower()] = parts[1] if len(parts) > 1 else None
        return cores

    platforms = (data.get("platforms") or []) if isinstance(data, dict) else data
    if not isinstance(platforms, list):
        return cores

    for platform_info in platforms:
        if not isinstance(platform_info, dict) or not platform_info.get("id"):
            continue
        version = platform_info.get("installed_version") or platform_info.get("installed")
        cores[str(platform_info["id"]).lower()] = version

    return cores


def parse_installed_libraries(stdout: str) -> Optional[Set[str]]:
    """Parse `arduino-cli lib list --format json` output.

    Args:
        stdout: Output of `lib list --format json`

    Returns:
        Set of lowercase library names, or None if the output is not JSON
    """
    try:
        data = json.loads(stdout) if stdout.strip() else {}
    except json.JSONDecodeError:
        return None

    entries = (data.get("installed_libraries") or []) if isinstance(data, dict) else data
    names: Set[str] = set()
    if not isinstance(entries, list):
        return names

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        library = entry.get("library", entry)
        if isinstance(library, dict) and library.get("name"):
            names.add(str(library["name"]).lower())
    return names


class DependencyResolver:
    """Ensures cores and libraries are installed through arduino-cli."""

    def __init__(self, cli: ArduinoCli, settings: Optional[ToolchainSettings] = None):
        """Initialize the resolver.

        Args:
            cli: arduino-cli invoker
            settings: Toolchain settings (defaults to the invoker's settings)
        """
        self.cli = cli
        self.settings = settings or cli.settings
        self.cache = InstallationCache()

        self._locks_lock = threading.Lock()
        self._component_locks: Dict[ComponentId, threading.Lock] = {}
        self._updated_indexes: Set[str] = set()

    def __enter__(self) -> "DependencyResolver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Drop all cached state."""
        self.clear_cache()
        with self._locks_lock:
            self._component_locks.clear()

    # Cores

    def ensure_core(self, board_selector: str) -> ComponentId:
        """Ensure the core required by a board is installed.

        Args:
            board_selector: Board selector (e.g., "arduino-uno")

        Returns:
            The core component that is now installed

        Raises:
            UnknownBoardError: If the board selector is unknown
            DependencyInstallError: If install, upgrade and reinstall all fail
            ToolchainNotFoundError: If arduino-cli is not available
        """
        profile = get_board_profile(board_selector)
        component = ComponentId.core(profile.core)
        self.ensure_core_component(component)
        return component

    def ensure_core_component(self, component: ComponentId) -> None:
        """Ensure a specific core component is installed."""
        if component in self.cache:
            logging.info(f"Core {component.spec} already available (cached)")
            return

        with self._component_lock(component):
            if component in self.cache:
                logging.info(f"Core {component.spec} installed by a concurrent request")
                return

            state = self.query_core_state(component)

            if self._is_satisfied(component, state):
                logging.info(f"Core {component.spec} found on system")
            elif state == InstallState.INSTALLED_ANY_VERSION and component.version:
                logging.info(f"Different version of {component.name} found, upgrading to {component.spec}")
                self._upgrade_core(component)
                state = InstallState.INSTALLED_EXACT_VERSION
            else:
                logging.info(f"Core {component.spec} not found, installing")
                self._install_core(component)
                state = (
                    InstallState.INSTALLED_EXACT_VERSION
                    if component.version
                    else InstallState.INSTALLED_ANY_VERSION
                )

            self.cache.record(component, state)

    def query_core_state(self, component: ComponentId) -> InstallState:
        """Ask arduino-cli whether a core is installed.

        A failed or timed-out query yields UNKNOWN, which is handled like
        NOT_INSTALLED.
        """
        try:
            result = self.cli.run(
                ["core", "list", "--format", "json"],
                timeout=self.settings.timeouts.listing,
                max_output_bytes=self.settings.output_limits.listing,
            )
        except ToolchainTimeoutError as e:
            logging.warning(f"Error checking core {component.spec}: {e}")
            return InstallState.UNKNOWN

        if not result.ok:
            logging.warning(f"Error checking core {component.spec}: {result.output}")
            return InstallState.UNKNOWN

        cores = parse_installed_cores(result.stdout)
        key = component.name.lower()
        if key not in cores:
            return InstallState.NOT_INSTALLED

        installed_version = cores[key]
        if component.version and installed_version == component.version:
            return InstallState.INSTALLED_EXACT_VERSION
        return InstallState.INSTALLED_ANY_VERSION

    def _install_core(self, component: ComponentId) -> None:
        self._update_index(component)

        logging.info(f"Installing {component.spec}; this may take several minutes")
        ok, diagnostics = self._run_step(
            ["core", "install", component.spec] + self._index_args(component),
            timeout=self.settings.timeouts.core_install,
        )
        if not ok:
            logging.error(f"Failed to install core {component.spec}")
            raise DependencyInstallError(
                component, f"Failed to install core {component.spec}", diagnostics
            )
        logging.info(f"Core {component.spec} installed successfully")

    def _upgrade_core(self, component: ComponentId) -> None:
        self._update_index(component)

        ok, diagnostics = self._run_step(
            ["core", "upgrade", component.spec] + self._index_args(component),
            timeout=self.settings.timeouts.core_install,
        )
        if ok:
            if self.query_core_state(component) == InstallState.INSTALLED_EXACT_VERSION:
                logging.info(f"Core upgraded to {component.spec}")
                return
            logging.warning(f"Upgrade did not produce {component.spec}, trying uninstall + install")
        else:
            logging.warning(f"Upgrade to {component.spec} failed, trying uninstall + install")

        ok, uninstall_diagnostics = self._run_step(
            ["core", "uninstall", component.name],
            timeout=self.settings.timeouts.library_install,
        )
        if not ok:
            raise DependencyInstallError(
                component,
                f"Failed to upgrade core {component.spec}: uninstall of {component.name} failed",
                "\n".join(part for part in (diagnostics, uninstall_diagnostics) if part),
            )

        self._install_core(component)

    def _update_index(self, component: ComponentId) -> None:
        """Refresh a third-party package index once per resolver."""
        if not component.index_url:
            return
        with self._locks_lock:
            if component.index_url in self._updated_indexes:
                return

        ok, diagnostics = self._run_step(
            ["core", "update-index"] + self._index_args(component),
            timeout=self.settings.timeouts.library_install,
        )
        if ok:
            with self._locks_lock:
                self._updated_indexes.add(component.index_url)
        else:
            logging.warning(f"Failed to update package index {component.index_url}: {diagnostics}")

    # Libraries

    def ensure_library(self, name: str) -> LibraryOutcome:
        """Ensure a library is installed.

        Failures never raise; they are logged and returned in the outcome, and
        the library stays uncached.

        Args:
            name: Library-manager name (e.g., "Servo")

        Returns:
            LibraryOutcome describing what happened
        """
        component = ComponentId.library(name)
        if component in self.cache:
            return LibraryOutcome(name=name, installed=True, from_cache=True)

        with self._component_lock(component):
            if component in self.cache:
                return LibraryOutcome(name=name, installed=True, from_cache=True)

            if self.query_library_state(component) in (
                InstallState.INSTALLED_ANY_VERSION,
                InstallState.INSTALLED_EXACT_VERSION,
            ):
                self.cache.record(component, InstallState.INSTALLED_ANY_VERSION)
                return LibraryOutcome(name=name, installed=True)

            logging.info(f"Installing library: {name}")
            ok, diagnostics = self._run_step(
                ["lib", "install", name],
                timeout=self.settings.timeouts.library_install,
            )
            if not ok:
                warning = f"Failed to install library {name}: {diagnostics.strip() or 'unknown error'}"
                logging.warning(warning)
                return LibraryOutcome(name=name, installed=False, warning=warning)

            logging.info(f"Library {name} installed successfully")
            self.cache.record(component, InstallState.INSTALLED_ANY_VERSION)
            return LibraryOutcome(name=name, installed=True, newly_installed=True)

    def query_library_state(self, component: ComponentId) -> InstallState:
        """Ask arduino-cli whether a library is installed."""
        try:
            result = self.cli.run(
                ["lib", "list", "--format", "json"],
                timeout=self.settings.timeouts.listing,
                max_output_bytes=self.settings.output_limits.listing,
            )
        except ToolchainTimeoutError as e:
            logging.warning(f"Error checking library {component.name}: {e}")
            return InstallState.UNKNOWN

        if not result.ok:
            return InstallState.UNKNOWN

        names = parse_installed_libraries(result.stdout)
        if names is None:
            installed = component.name in result.stdout
        else:
            installed = component.name.lower() in names

        return InstallState.INSTALLED_ANY_VERSION if installed else InstallState.NOT_INSTALLED

    @staticmethod
    def detect_required_libraries(source_text: str) -> FrozenSet[str]:
        """See library_detector.detect_required_libraries."""
        return detect_required_libraries(source_text)

    # Aggregate

    def ensure_dependencies(self, source_text: str, board_selector: str) -> DependencyReport:
        """Ensure the core and all detected libraries for a sketch.

        Args:
            source_text: Sketch source code
            board_selector: Board selector

        Returns:
            DependencyReport with the core and per-library outcomes

        Raises:
            UnknownBoardError: If the board selector is unknown
            DependencyInstallError: If the core cannot be installed
        """
        logging.info(f"Checking dependencies for {board_selector}")
        core = self.ensure_core(board_selector)
        report = DependencyReport(board_selector=board_selector, core=core)

        libraries = sorted(detect_required_libraries(source_text))
        if libraries:
            logging.info(f"Required libraries: {', '.join(libraries)}")
        for library in libraries:
            report.libraries.append(self.ensure_library(library))

        logging.info(f"All dependencies ready for {board_selector}")
        return report

    def get_status(self) -> Dict[str, object]:
        """Snapshot of the cache for diagnostics."""
        cores = [c.spec for c in self.cache.components(ComponentKind.CORE)]
        libraries = [c.spec for c in self.cache.components(ComponentKind.LIBRARY)]
        return {
            "installed_cores": cores,
            "installed_libraries": libraries,
            "core_count": len(cores),
            "library_count": len(libraries),
        }

    def clear_cache(self) -> None:
        """Forget every confirmed install."""
        self.cache.clear()
        logging.info("Dependency cache cleared")

    # Helpers

    def _component_lock(self, component: ComponentId) -> threading.Lock:
        with self._locks_lock:
            return self._component_locks.setdefault(component, threading.Lock())

    @staticmethod
    def _is_satisfied(component: ComponentId, state: InstallState) -> bool:
        if state == InstallState.INSTALLED_EXACT_VERSION:
            return True
        return state == InstallState.INSTALLED_ANY_VERSION and component.version is None

    @staticmethod
    def _index_args(component: ComponentId) -> List[str]:
        return ["--additional-urls", component.index_url] if component.index_url else []

    def _run_step(self, args: List[str], timeout: float) -> Tuple[bool, str]:
        """Run an install-type command.

        Returns:
            Tuple of (succeeded, diagnostics); a timeout counts as a failure
        """
        try:
            result = self.cli.run(
                args, timeout=timeout, max_output_bytes=self.settings.output_limits.compile
            )
        except ToolchainTimeoutError as e:
            return False, "\n".join(part for part in (str(e), e.output) if part)
        return result.ok, result.output
