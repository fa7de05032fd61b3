""" Configuration for ucmflow

Built-in defaults live in ucmflow/data/config.toml. A toml file can be merged
on top of them with load_config. """

import importlib.resources
import types
from typing import Dict, Optional, Any, List, TextIO

import toml # type: ignore

def _compatible(current:Any, override:Any) -> bool:
    # toml writes 1 and 1.0 differently, either is fine for a float setting
    if isinstance(current, float) and isinstance(override, int) and not isinstance(override, bool):
        return True
    return type(current) is type(override)

def merge(base:Dict[str, Any], override:Dict[str, Any], path:Optional[List[str]]=None) -> Dict[str, Any]:
    """ merges override into base in place, tables recursively

    a key present in both must keep its type, otherwise ValueError names the
    dotted key. keys only in override are added as is. """

    path = path or []
    for key, value in override.items():
        key_path = path + [str(key)]
        if key not in base:
            base[key] = value
        elif isinstance(base[key], dict) and isinstance(value, dict):
            merge(base[key], value, key_path)
        elif _compatible(base[key], value):
            base[key] = float(value) if isinstance(base[key], float) else value
        else:
            raise ValueError(f'{".".join(key_path)} should be {type(base[key]).__name__}, got {value!r}')
    return base

def to_namespace(table:Dict[str, Any]) -> types.SimpleNamespace:
    return types.SimpleNamespace(**{
        key: to_namespace(value) if isinstance(value, dict) else value
        for key, value in table.items()
    })

def read_builtin(name:str) -> str:
    return importlib.resources.files("ucmflow.data").joinpath(name).read_text()

def load_config(config_file:Optional[TextIO]=None) -> types.SimpleNamespace:
    config = toml.loads(read_builtin("config.toml"))
    if config_file:
        merge(config, toml.load(config_file))

    global Settings
    Settings = to_namespace(config)

    return Settings

# modules read Settings at call time, so load_config can replace it later
Settings = load_config()
