import os
import sys
from collections import namedtuple

from .constants import APP_NAME

HOME_ENV = "JFP_HOME"

JfpPaths = namedtuple(
    "JfpPaths",
    [
        "config_dir",
        "cache_dir",
        "db_path",
        "registry_cache_path",
        "registry_meta_path",
        "config_path",
    ],
)


def _platform_dirs(env, platform):
    user_home = env.get("HOME") or os.path.expanduser("~")
    if platform == "darwin":
        return (
            os.path.join(user_home, "Library", "Application Support"),
            os.path.join(user_home, "Library", "Caches"),
        )
    if platform.startswith("win"):
        appdata = env.get("APPDATA") or os.path.join(user_home, "AppData", "Roaming")
        local = env.get("LOCALAPPDATA") or os.path.join(user_home, "AppData", "Local")
        return appdata, local
    config_base = env.get("XDG_CONFIG_HOME") or os.path.join(user_home, ".config")
    cache_base = env.get("XDG_CACHE_HOME") or os.path.join(user_home, ".cache")
    return config_base, cache_base


def resolve_paths(home=None, env=None, platform=None):
    """Resolve every on-disk location used by jfp.

    ``home`` (or ``$JFP_HOME``) replaces the user's home directory and always
    uses the ``.config``/``.cache`` layout. Nothing is created on disk.
    """
    env = os.environ if env is None else env
    platform = platform or sys.platform
    home = home or env.get(HOME_ENV)

    if home:
        home = os.path.expanduser(str(home))
        config_base = os.path.join(home, ".config")
        cache_base = os.path.join(home, ".cache")
    else:
        config_base, cache_base = _platform_dirs(env, platform)

    config_dir = os.path.join(config_base, APP_NAME)
    cache_dir = os.path.join(cache_base, APP_NAME)
    return JfpPaths(
        config_dir=config_dir,
        cache_dir=cache_dir,
        db_path=os.path.join(cache_dir, "jfp.db"),
        registry_cache_path=os.path.join(config_dir, "registry.json"),
        registry_meta_path=os.path.join(config_dir, "registry.meta.json"),
        config_path=os.path.join(config_dir, "config.json"),
    )


def get_db_path(home=None):
    return resolve_paths(home).db_path
