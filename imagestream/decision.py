# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

'''
decides whether an image stream (or some of its tags) needs to be imported from a remote
registry. All functions in this module are free of side-effects; in particular, passed-in
image streams are never modified.
'''

import collections.abc
import dataclasses
import enum
import logging
import typing

import imagestream.model as im

logger = logging.getLogger(__name__)


class TagImportState(enum.Enum):
    ALIAS = 'alias'
    NOT_IMPORTABLE = 'not_importable'
    FIRST_IMPORT = 'first_import'
    SPEC_ADVANCED = 'spec_advanced'
    RETRY_AFTER_FAILURE = 'retry_after_failure'
    FAILURE_SUPPRESSED = 'failure_suppressed'
    UP_TO_DATE = 'up_to_date'

    @property
    def needs_import(self) -> bool:
        return self in (
            TagImportState.FIRST_IMPORT,
            TagImportState.SPEC_ADVANCED,
            TagImportState.RETRY_AFTER_FAILURE,
        )


@dataclasses.dataclass(frozen=True)
class TagGenerations:
    '''
    pinned: generation requested by spec-tag (None if unset)
    latest: highest generation found in the tag's status-history (None if empty)
    failed: generation of a failed ImportSuccess condition (None if absent or not failed)
    '''
    pinned: int | None = None
    latest: int | None = None
    failed: int | None = None

    @property
    def has_status(self) -> bool:
        return self.latest is not None or self.failed is not None


def _spec_advanced(g: TagGenerations) -> bool:
    return g.pinned is not None and g.latest is not None and g.pinned > g.latest


def _failure_outdated(g: TagGenerations) -> bool:
    return g.pinned is not None and g.failed is not None and g.pinned > g.failed


def _failure_current(g: TagGenerations) -> bool:
    return g.pinned is not None and g.failed is not None and g.pinned == g.failed


# evaluated top to bottom, first match wins
_tag_state_table: tuple[tuple[typing.Callable[[TagGenerations], bool], TagImportState], ...] = (
    (lambda g: not g.has_status, TagImportState.FIRST_IMPORT),
    (_spec_advanced, TagImportState.SPEC_ADVANCED),
    (_failure_outdated, TagImportState.RETRY_AFTER_FAILURE),
    (_failure_current, TagImportState.FAILURE_SUPPRESSED),
)


@dataclasses.dataclass(frozen=True)
class ImportDecision:
    repository: bool = False
    tags: frozenset[str] = frozenset()

    @property
    def empty(self) -> bool:
        return not self.repository and not self.tags

    def __bool__(self):
        return not self.empty


def tag_generations(
    tag_ref: im.TagReference,
    tag_status: im.TagEventList | None,
) -> TagGenerations:
    if not tag_status:
        return TagGenerations(pinned=tag_ref.generation)

    return TagGenerations(
        pinned=tag_ref.generation,
        latest=tag_status.latest_generation(),
        failed=tag_status.failed_import_generation(),
    )


def tag_import_state(
    tag_ref: im.TagReference,
    tag_status: im.TagEventList | None,
) -> TagImportState:
    if tag_ref.reference:
        return TagImportState.ALIAS
    if not tag_ref.importable:
        return TagImportState.NOT_IMPORTABLE

    generations = tag_generations(tag_ref=tag_ref, tag_status=tag_status)

    for matches, state in _tag_state_table:
        if matches(generations):
            return state

    return TagImportState.UP_TO_DATE


def tag_import_states(
    stream: im.ImageStream,
) -> collections.abc.Generator[tuple[str, TagImportState], None, None]:
    for name, tag_ref in stream.spec.tags.items():
        yield name, tag_import_state(
            tag_ref=tag_ref,
            tag_status=stream.status.tags.get(name),
        )


def needs_repository_import(stream: im.ImageStream) -> bool:
    if not stream.spec.dockerImageRepository:
        return False
    # the annotation is a one-shot latch; its value (timestamp or error message) is not parsed
    return not stream.repository_checked


def needs_import(stream: im.ImageStream) -> ImportDecision:
    tags = frozenset(
        name for name, state in tag_import_states(stream)
        if state.needs_import
    )
    decision = ImportDecision(
        repository=needs_repository_import(stream),
        tags=tags,
    )
    logger.debug(f'{stream.key}: {decision=}')

    return decision
