from importlib.metadata import PackageNotFoundError
from importlib.metadata import version

try:
    __version__ = version("recruitdesk")
except PackageNotFoundError:
    # Running from a source checkout without the package installed.
    __version__ = "0.0.0"

__version_info__ = tuple(
    int(num) if num.isdigit() else num
    for num in __version__.replace("-", ".", 1).split(".")
)
