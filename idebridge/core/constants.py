"""Constants and limits shared by the gateway and the in-IDE host."""

# Host instances only ever listen on the loopback interface.
DEFAULT_HOST = "127.0.0.1"

# One fixed port per IDE product. Discovery probes all of them.
IDE_PORTS: dict[str, int] = {
    "IntelliJ IDEA": 8765,
    "WebStorm": 8766,
    "PyCharm": 8767,
    "GoLand": 8768,
    "PhpStorm": 8769,
    "RubyMine": 8770,
    "CLion": 8771,
    "Rider": 8772,
    "DataGrip": 8773,
    "Android Studio": 8774,
    "RustRover": 8775,
    "Aqua": 8776,
    "DataSpell": 8777,
}
DEFAULT_PORTS: tuple[int, ...] = tuple(IDE_PORTS.values())

STATUS_PATH = "/status"

PROBE_TIMEOUT_SECONDS = 1.0
# Extra wait on top of the probe timeout before abandoning stragglers.
PROBE_GRACE_SECONDS = 0.25

DEFAULT_MUTATION_TIMEOUT_SECONDS = 30.0
MOVE_MUTATION_TIMEOUT_SECONDS = 60.0

# Must exceed the longest host-side deadline so the host reports TIMEOUT first.
CALL_TIMEOUT_SECONDS = 90.0

# Operation names, as they appear in capability maps and on the wire.
OP_RENAME = "rename"
OP_FIND_USAGES = "findUsages"
OP_MOVE = "move"
OP_EXTRACT_METHOD = "extractMethod"
OP_DIAGNOSTICS = "diagnostics"
OP_APPLY_FIX = "applyFix"

MAX_USAGE_PREVIEW_CHARS = 200

DEFAULT_DIAGNOSTICS_LIMIT = 100
# Collection stops once this many times the limit has been gathered (or files visited).
DIAGNOSTICS_SCAN_FACTOR = 2
