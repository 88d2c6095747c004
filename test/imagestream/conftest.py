# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import copy

import pytest

import imagestream.client
import imagestream.model as im


class FakeStreamClient(imagestream.client.StreamClientBase):
    '''
    records all calls as (verb, resource) tuples in `actions`. If a `reactor` is passed, it is
    called before each action (and may raise).
    '''
    def __init__(self, *streams: im.ImageStream, reactor=None):
        self.streams = {stream.key: stream for stream in streams}
        self.reactor = reactor
        self.actions = []
        self.imports = []

    def _act(self, verb: str, resource: str):
        self.actions.append((verb, resource))
        if self.reactor:
            self.reactor(verb, resource)

    def get(self, namespace: str, name: str) -> im.ImageStream:
        self._act('get', 'imagestreams')

        key = f'{namespace}/{name}' if namespace else name
        if not (stream := self.streams.get(key)):
            raise imagestream.client.NotFoundError(key)

        return copy.deepcopy(stream)

    def create_import(self, image_stream_import: im.ImageStreamImport) -> im.ImageStreamImport:
        self._act('create', 'imagestreamimports')
        self.imports.append(image_stream_import)

        return image_stream_import


def not_found_reactor(verb: str, resource: str):
    raise imagestream.client.NotFoundError(resource)


def io_error_reactor(verb: str, resource: str):
    raise imagestream.client.StreamClientError('connection refused')


@pytest.fixture
def fake_client():
    return FakeStreamClient


@pytest.fixture
def reactors():
    class Reactors:
        not_found = staticmethod(not_found_reactor)
        io_error = staticmethod(io_error_reactor)
    return Reactors


@pytest.fixture
def make_stream():
    '''
    returns a factory for image streams, using the wire-representation for tags
    '''
    def make_stream(
        spec_tags: list[dict]=(),
        status_tags: list[dict]=(),
        annotations: dict | None = None,
        repository: str | None = None,
        name: str='test',
        namespace: str='other',
        **metadata,
    ) -> im.ImageStream:
        return im.ImageStream.from_dict({
            'metadata': {
                'name': name,
                'namespace': namespace,
                'annotations': annotations,
                **metadata,
            },
            'spec': {
                'dockerImageRepository': repository,
                'tags': list(spec_tags),
            },
            'status': {
                'tags': list(status_tags),
            },
        })

    return make_stream
