"""
gitmt: multiple git identities on one machine.

Keeps a registry of named identities (name, email, SSH key, host alias)
and switches the active one on demand, keeping the registry, the SSH
client config, and git's own identity config in step.
"""

import os

__version__ = "1.0.0"

GITMT_HOME = os.environ.get("GITMT_HOME", "~/.gitmt")
