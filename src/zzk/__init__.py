"""
zzk: a personal swiss army knife CLI.

Git identities keyed by folder, Claude provider switching,
remote directory backups, font installs, volume control and
media downloads. One tool, one home directory.
"""

import os

__version__ = "0.1.0"
__author__ = "ppowo"

USER_HOME = os.environ.get("ZZK_HOME", "~")
CONFIG_SUBDIR = os.path.join(".config", "zzk")
