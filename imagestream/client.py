# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import abc

import imagestream.model as im


class StreamClientError(Exception):
    '''
    raised by stream clients for any failure to read or write image streams (or imports)
    '''
    pass


class NotFoundError(StreamClientError):
    '''
    raised if the requested object does not exist (any more)
    '''
    pass


class StreamClientBase:
    '''
    access to ImageStreams and ImageStreamImports. Implementations must be thread-safe, as they
    are used both from the event-handling and the scheduler thread.
    '''
    @abc.abstractmethod
    def get(
        self,
        namespace: str,
        name: str,
    ) -> im.ImageStream:
        '''
        returns the current image stream; its version token is `metadata.resourceVersion`

        raises `NotFoundError` if there is no such image stream
        '''
        raise NotImplementedError('must be implemented by its subclasses')

    @abc.abstractmethod
    def create_import(
        self,
        image_stream_import: im.ImageStreamImport,
    ) -> im.ImageStreamImport:
        '''
        creates the given import-request, and returns it as returned from the import pipeline
        (with per-image results in its status)
        '''
        raise NotImplementedError('must be implemented by its subclasses')
