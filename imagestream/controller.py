# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import copy
import dataclasses
import logging

import imagestream.client
import imagestream.decision
import imagestream.model as im
import imagestream.scheduler

logger = logging.getLogger(__name__)


def import_request(
    stream: im.ImageStream,
    decision: imagestream.decision.ImportDecision,
) -> im.ImageStreamImport:
    '''
    creates a single import-request covering all tags (and the repository) from the given
    decision
    '''
    images = []
    for tag in sorted(decision.tags):
        tag_ref = stream.spec.tags[tag]
        images.append(im.ImageImportSpec(
            from_=im.ObjectReference(
                kind=im.DOCKER_IMAGE_KIND,
                name=tag_ref.from_.name,
            ),
            to=im.LocalObjectReference(name=tag),
            importPolicy=dataclasses.replace(tag_ref.importPolicy),
        ))

    if decision.repository:
        repository = im.RepositoryImportSpec(
            from_=im.ObjectReference(
                kind=im.DOCKER_IMAGE_KIND,
                name=stream.spec.dockerImageRepository,
            ),
            importPolicy=im.TagImportPolicy(insecure=stream.insecure_repository),
        )
    else:
        repository = None

    return im.ImageStreamImport(
        metadata=im.ObjectMeta(
            name=stream.metadata.name,
            namespace=stream.metadata.namespace,
            uid=stream.metadata.uid,
            resourceVersion=stream.metadata.resourceVersion,
        ),
        spec=im.ImageStreamImportSpec(
            import_=True,
            images=images,
            repository=repository,
        ),
    )


class ImportController:
    def __init__(self, streams: imagestream.client.StreamClientBase):
        self.streams = streams

    def reconcile(self, stream: im.ImageStream) -> im.ImageStreamImport | None:
        '''
        issues (at most) one import-request for the given stream, if any of its tags (or its
        repository) need to be imported. Returns the created import, or None if no import was
        needed (in which case no calls are made at all).

        errors raised from the stream-client are passed through unchanged
        '''
        decision = imagestream.decision.needs_import(stream)
        if not decision:
            logger.debug(f'{stream.key}: no import needed')
            return None

        image_stream_import = import_request(
            stream=stream,
            decision=decision,
        )
        logger.info(
            f'{stream.key}: importing tags {image_stream_import.tags()} '
            f'(repository: {decision.repository})'
        )

        return self.streams.create_import(image_stream_import)


@dataclasses.dataclass(frozen=True)
class ScheduledEntry:
    '''
    the version of an image stream observed when it was scheduled
    '''
    uid: str | None
    resourceVersion: str | None

    @staticmethod
    def of(stream: im.ImageStream) -> 'ScheduledEntry':
        return ScheduledEntry(
            uid=stream.metadata.uid,
            resourceVersion=stream.metadata.resourceVersion,
        )


def split_key(key: str) -> tuple[str | None, str]:
    if '/' in key:
        namespace, name = key.split('/', 1)
        return namespace, name
    return None, key


def with_scheduled_tags_reset(stream: im.ImageStream) -> im.ImageStream:
    '''
    returns a copy of the given stream in which all scheduled tags are pinned to the next
    generation, which lets the decision-engine consider them outdated
    '''
    stream = copy.deepcopy(stream)
    next_generation = stream.metadata.generation + 1

    for tag_ref in stream.scheduled_tags():
        tag_ref.generation = next_generation

    return stream


class ScheduledImportController:
    '''
    periodically re-imports image streams that have tags with a `scheduled` import-policy

    `enqueue` is to be called for every observed update of an image stream; the scheduler
    will then periodically fetch the current state of the stream and reconcile it using
    the wrapped import-controller.
    '''
    def __init__(
        self,
        controller: ImportController,
        interval_seconds: float,
        enabled: bool=True,
    ):
        self.controller = controller
        self.enabled = enabled
        self.scheduler = imagestream.scheduler.Scheduler(
            handle=self.sync,
            interval_seconds=interval_seconds,
        )

    def enqueue(self, stream: im.ImageStream):
        if not self.enabled:
            return

        key = stream.key
        if not any(stream.scheduled_tags()):
            if self.scheduler.discard(key):
                logger.info(f'{key}: no scheduled tags left - stopped scheduling')
            return

        entry = ScheduledEntry.of(stream)
        if key not in self.scheduler:
            logger.info(f'{key}: scheduling periodic import')
        self.scheduler.add(key, entry)

    def forget(self, stream: im.ImageStream) -> bool:
        '''
        drops the entry for the given (deleted) stream, unless it was replaced by an entry
        for a different object (uid) in the meantime
        '''
        key = stream.key
        if not (entry := self.scheduler.get(key)):
            return False
        if entry.uid != stream.metadata.uid:
            return False

        # must stay a compare-and-delete: the entry may have been replaced since `get`
        return self.scheduler.remove(key, entry)

    def sync(self, key: str, value: ScheduledEntry):
        if not self.enabled:
            self.scheduler.remove(key, value)
            return

        namespace, name = split_key(key)
        try:
            stream = self.controller.streams.get(namespace=namespace, name=name)

            if not any(stream.scheduled_tags()):
                if self.scheduler.remove(key, value):
                    logger.info(f'{key}: no scheduled tags left - stopped scheduling')
                return

            self.controller.reconcile(with_scheduled_tags_reset(stream))
        except imagestream.client.NotFoundError:
            # raised by `get` or `create_import`; either way the stream is gone
            if self.scheduler.remove(key, value):
                logger.info(f'{key}: image stream was deleted - stopped scheduling')
