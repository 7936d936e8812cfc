"""XDG-compliant storage paths for fmail.

Directory layout follows XDG Base Directory Specification:
- ~/.config/fmail/       Config (persistent)
- ~/.local/state/fmail/  Logs (persistent, safe to delete)

See: https://specifications.freedesktop.org/basedir-spec/latest/
"""

from pathlib import Path

# Base directories
CONFIG_DIR = Path.home() / ".config" / "fmail"
STATE_DIR = Path.home() / ".local" / "state" / "fmail"

# Config
CONFIG_FILE = CONFIG_DIR / "config.json"

# State: JSON-lines log of every invocation
LOG_FILE = STATE_DIR / "fmail.jsonl"
