"""web3.py v6/v7 compatibility."""

import datetime
from importlib.metadata import version

from packaging.version import Version

pkg_version = version("web3")
WEB3_PY_V7 = Version(pkg_version) >= Version("7.0.0")


def native_datetime_utc_now() -> datetime.datetime:
    """Get current UTC time as a naive datetime object.

    Replacement for the deprecated ``datetime.datetime.utcnow()``.
    """
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
