# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import copy
import functools
import os

import yaml


def not_empty(value):
    if not value or len(value) == 0:
        raise ValueError('passed value must not be empty')
    return value


def not_none(value):
    if value is None:
        raise ValueError('passed value must not be None')
    return value


def existing_file(path: str):
    if not os.path.isfile(path):
        raise ValueError(f'not an existing file: {path}')
    return path


def parse_yaml_file(path: str) -> dict:
    with open(existing_file(path)) as f:
        return yaml.safe_load(f)


def load_yaml_documents(path: str):
    with open(existing_file(path)) as f:
        yield from (doc for doc in yaml.safe_load_all(f) if doc)


def merge_dicts(base: dict, *other: dict) -> dict:
    '''
    merges copies of the given dict instances and returns the merge result.
    The arguments remain unmodified.

    Merging is done using the `deepmerge` module. In case of merge conflicts, values from
    `other` overwrite values from `base`. Lists are replaced rather than merged.
    '''
    not_none(base)
    not_empty(other)

    from deepmerge import Merger

    merger = Merger(
        [(dict, ['merge'])],
        ['override'],
        ['override'],
    )

    return functools.reduce(
        lambda b, o: merger.merge(b, copy.deepcopy(o)),
        [base, *other],
        {},
    )
