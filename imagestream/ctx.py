# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

'''
controller configuration. Layered (later layers win):

- defaults (see dataclasses below)
- YAML-file (passed explicitly, or via env-var IMAGESTREAM_CONTROLLER_CFG)
- environment variables
- explicit overrides (typically from command line arguments)
'''

import dataclasses
import os

import dacite

import imagestream.util

CFG_FILE_ENV = 'IMAGESTREAM_CONTROLLER_CFG'


@dataclasses.dataclass
class SchedulerCfg:
    enabled: bool = True
    interval_seconds: float = 900.0

    def __post_init__(self):
        if not self.interval_seconds > 0:
            raise ValueError(f'interval must be positive: {self.interval_seconds=}')


@dataclasses.dataclass
class KubernetesCfg:
    kubeconfig: str | None = None # path; in-cluster config is used if absent
    namespace: str | None = None # None -> all namespaces


@dataclasses.dataclass
class ControllerConfig:
    scheduler: SchedulerCfg = dataclasses.field(default_factory=SchedulerCfg)
    kubernetes: KubernetesCfg = dataclasses.field(default_factory=KubernetesCfg)
    log_level: str = 'INFO'


def _parse_bool(value: str) -> bool:
    value = value.strip().lower()
    if value in ('true', 'yes', '1'):
        return True
    if value in ('false', 'no', '0'):
        return False
    raise ValueError(f'not a boolean: {value=}')


def _strip_none(raw: dict) -> dict:
    return {
        k: _strip_none(v) if isinstance(v, dict) else v
        for k, v in raw.items()
        if v is not None
    }


def _config_from_env(env) -> dict:
    scheduler = {}
    kubernetes = {}
    cfg = {}

    if (enabled := env.get('IMAGESTREAM_SCHEDULE_ENABLED')) is not None:
        scheduler['enabled'] = _parse_bool(enabled)
    if interval := env.get('IMAGESTREAM_SCHEDULE_INTERVAL_SECONDS'):
        scheduler['interval_seconds'] = float(interval)

    if kubeconfig := env.get('KUBECONFIG'):
        kubernetes['kubeconfig'] = kubeconfig
    if namespace := env.get('IMAGESTREAM_NAMESPACE'):
        kubernetes['namespace'] = namespace

    if log_level := env.get('IMAGESTREAM_LOG_LEVEL'):
        cfg['log_level'] = log_level

    if scheduler:
        cfg['scheduler'] = scheduler
    if kubernetes:
        cfg['kubernetes'] = kubernetes

    return cfg


def _config_from_file(path: str) -> dict:
    raw = imagestream.util.parse_yaml_file(path)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f'expected a mapping in {path=}')
    return raw


def load_config(
    path: str | None = None,
    overrides: dict | None = None,
    env=None,
) -> ControllerConfig:
    if env is None:
        env = os.environ

    layers = [dataclasses.asdict(ControllerConfig())]

    if path := path or env.get(CFG_FILE_ENV):
        layers.append(_config_from_file(path))

    layers.append(_config_from_env(env))

    if overrides:
        layers.append(_strip_none(overrides))

    merged = imagestream.util.merge_dicts(*layers)

    return dacite.from_dict(
        data_class=ControllerConfig,
        data=merged,
        config=dacite.Config(cast=[float]),
    )
