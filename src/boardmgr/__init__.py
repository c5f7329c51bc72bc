"""boardmgr - board support package, tool and library manager.

Manages embedded toolchain platforms, their tools and libraries from package
indexes: resolution of board names, verified downloads, atomic installs and
upgrades with rollback, scoped to explicitly created instances.
"""

from .errors import BoardManagerError

__version__ = "0.1.0"

__all__ = ["BoardManagerError", "__version__"]
