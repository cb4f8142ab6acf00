from dataclasses import dataclass, field
from importlib import metadata
import platform
from pathlib import Path
import tempfile
from typing import Optional

from .cache import DEFAULT_BUDGET
from .image_cache import DEFAULT_BUDGET as DEFAULT_IMAGE_BUDGET
from .util import DEFAULT_CHARSET


DEFAULT_APP_NAME = 'Cannon'
DEFAULT_VERSION = '0.0.1'
DISK_CACHE_NAME = 'AmmunitionBox'


def _default_cache_directory() -> Path:
    return Path(tempfile.gettempdir()) / DISK_CACHE_NAME


@dataclass
class Config:
    """
    Everything the dispatcher is configured with. Passed to `cannon.load()`.
    """

    cache_directory: Path = field(default_factory=_default_cache_directory)
    cache_budget: int = DEFAULT_BUDGET
    cache_directory_levels: int = 2
    image_cache_budget: int = DEFAULT_IMAGE_BUDGET
    workers: int = 4
    default_ttl: float = 0
    """
    Seconds a response stays fresh when it carries no max-age or Expires header.
    """
    encoding: str = DEFAULT_CHARSET
    timeout: Optional[float] = None
    """
    Transport timeout in seconds. `None` waits forever.
    """


@dataclass(frozen=True)
class Identity:
    """
    Describes the running application and the machine, for the user agent string.
    """
    app_name: str
    version: str
    system: str = ''
    machine: str = ''
    node: str = ''
    release: str = ''

    @property
    def user_agent(self) -> str:
        return '{}/{} ({} {} {}; {}; )'.format(self.app_name, self.version, self.system, self.machine,
                                               self.node, self.release)


def default_identity(app_name: str) -> Identity:
    """
    Look up the installed version of `app_name` and describe the host.

    @throws metadata.PackageNotFoundError
      If no distribution named `app_name` is installed.
    """
    return Identity(app_name=app_name,
                    version=metadata.version(app_name),
                    system=platform.system(),
                    machine=platform.machine(),
                    node=platform.node(),
                    release=platform.release())

