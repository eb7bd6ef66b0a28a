'''
Exposes checks for environment variables that configure inference defaults.
'''

import os

from typing import Optional, Any

# defaults used when neither an argument nor the environment supplies a value
DEFAULTS = dict(
    KMPY_N_JOBS = 1,
    KMPY_BATCH_SIZE = 2000,
    KMPY_PROGRESS_STEPS = 2000,
    KMPY_VERBOSE = False,
)

def get_var(var: str, default: Optional[str] = None, flag: Optional[str] = None) -> str:
    """Grab `var` from environment, respecting defaults and flag.

    Parameters
    ----------
    var : str
        The environment variable to get.
    default : Optional[str], default=None
        If `var` is None, what default to return (if any)?
    flag : Optional[str], default=None
        If supplied, this will override `var` for this call.

    Returns
    -------
    value : str
        Value of environment variable (or flag or default).
    """

    # check flag override
    if flag is not None:
        return flag

    # get environment var
    val = os.getenv(var)

    # fall back to default
    if val is None:
        return default

    return val

def is_enabled(var: str, default: bool = False, flag: Optional[bool] = None) -> bool:
    """Check if `var` is enabled in environment variables.

    Parameters
    ----------
    var : str
        The environment variable to get.
    default : bool, default=False
        If variable is not set, return default.
    flag : Optional[bool], default=None
        If supplied, this will override `var` for this call.

    Returns
    -------
    is_enabled : bool
        True if `var` is set to true (or was overriden, or default).
    """

    # setup matches
    match = ["1", "true", "yes", "on"]

    # check flag
    if flag is not None:
        return bool(flag)

    # get val
    val = get_var(var, default = match[0] if default else "0")

    # check val
    return val.strip().lower() in match

def get_int(var: str, default: Optional[int] = None, flag: Optional[int] = None, minimum: Optional[int] = None) -> int:
    """Grab an integer setting from `flag`, environment or defaults.

    Parameters
    ----------
    var : str
        The environment variable to get.
    default : Optional[int], default=None
        Fallback if `var` is not set. If None, :py:data:`DEFAULTS` is consulted.
    flag : Optional[int], default=None
        If supplied, this will override `var` for this call.
    minimum : Optional[int], default=None
        If supplied, values below `minimum` raise a ValueError.

    Returns
    -------
    value : int
        The integer setting.
    """

    # check default
    if default is None:
        default = DEFAULTS.get(var)

    # resolve value
    val: Any = flag if flag is not None else get_var(var, default = default)

    if val is None:
        raise ValueError(f'No value available for `{var}`.')

    # convert
    try:
        val = int(val)
    except (TypeError, ValueError):
        raise ValueError(f'`{var}` must be an integer, but got `{val}`.')

    # check bounds
    if minimum is not None and val < minimum:
        raise ValueError(f'`{var}` must be at least {minimum}, but got {val}.')

    return val
