# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import collections.abc
import logging

import dacite

from urllib3.exceptions import ProtocolError

from kubernetes import watch
from kubernetes.client import CustomObjectsApi
from kubernetes.client.rest import ApiException

from imagestream.client import (
    NotFoundError,
    StreamClientBase,
    StreamClientError,
)
from imagestream.util import not_empty, not_none
import imagestream.model as im

logger = logging.getLogger(__name__)

IMAGE_API_GROUP = 'image.openshift.io'
IMAGE_API_VERSION = 'v1'


def _translate_api_exception(ae: ApiException, what: str) -> StreamClientError:
    if ae.status == 404:
        return NotFoundError(f'{what} not found')
    return StreamClientError(f'{what}: {ae.status} {ae.reason}')


class KubernetesImageStreamHelper(StreamClientBase):
    '''Helper class for handling openshift image streams (and image stream imports)'''

    def __init__(self, custom_api: CustomObjectsApi):
        self.custom_api = custom_api

    def get(self, namespace: str, name: str) -> im.ImageStream:
        not_empty(namespace)
        not_empty(name)

        try:
            raw = self.custom_api.get_namespaced_custom_object(
                group=IMAGE_API_GROUP,
                version=IMAGE_API_VERSION,
                namespace=namespace,
                plural='imagestreams',
                name=name,
            )
        except ApiException as ae:
            raise _translate_api_exception(ae, f'imagestream {namespace}/{name}') from ae

        return im.ImageStream.from_dict(raw)

    def create_import(self, image_stream_import: im.ImageStreamImport) -> im.ImageStreamImport:
        not_none(image_stream_import)
        namespace = not_empty(image_stream_import.metadata.namespace)
        name = image_stream_import.metadata.name

        try:
            raw = self.custom_api.create_namespaced_custom_object(
                group=IMAGE_API_GROUP,
                version=IMAGE_API_VERSION,
                namespace=namespace,
                plural='imagestreamimports',
                body=image_stream_import.as_dict(),
            )
        except ApiException as ae:
            raise _translate_api_exception(ae, f'imagestreamimport {namespace}/{name}') from ae

        return im.ImageStreamImport.from_dict(raw)

    def watch(
        self,
        namespace: str | None = None,
        timeout_seconds: int | None = None,
    ) -> collections.abc.Generator[tuple[str, im.ImageStream], None, None]:
        '''
        yields (event_type, image_stream) for every observed change of an image stream (in the
        given namespace, or in all namespaces). event_type is one of ADDED, MODIFIED, DELETED.

        If timeout_seconds is given, the generator is exhausted after the server ends the watch;
        otherwise, the watch is re-established indefinitely.
        '''
        if namespace:
            list_func = self.custom_api.list_namespaced_custom_object
            kwargs = {'namespace': namespace}
        else:
            list_func = self.custom_api.list_cluster_custom_object
            kwargs = {}

        resource_version = None
        while True:
            w = watch.Watch()
            expired = False
            try:
                for event in w.stream(
                    list_func,
                    group=IMAGE_API_GROUP,
                    version=IMAGE_API_VERSION,
                    plural='imagestreams',
                    resource_version=resource_version,
                    timeout_seconds=timeout_seconds,
                    **kwargs,
                ):
                    event_type = event['type']
                    raw = event['object']
                    if event_type == 'ERROR':
                        if raw.get('code') == 410:
                            expired = True
                            break
                        raise StreamClientError(f'watch failed: {raw}')
                    if event_type == 'BOOKMARK':
                        continue

                    try:
                        stream = im.ImageStream.from_dict(raw)
                    except (dacite.DaciteError, KeyError):
                        # do not let one malformed object end the watch
                        logger.warning(
                            f'skipping malformed image stream ({event_type})',
                            exc_info=True,
                        )
                        resource_version = (raw.get('metadata') or {}).get(
                            'resourceVersion',
                            resource_version,
                        )
                        continue

                    resource_version = stream.metadata.resourceVersion
                    yield event_type, stream
            except ProtocolError:
                # work around IncompleteRead errors resulting in ProtocolErrors - no fault of ours
                logger.info('http connection error - re-establishing watch')
                continue
            except ApiException as ae:
                if ae.status != 410:
                    raise _translate_api_exception(ae, 'imagestreams') from ae
                expired = True
            finally:
                w.stop()

            if expired:
                # resourceVersion too old: restart from current state
                logger.info('watch expired - re-establishing watch')
                resource_version = None
                continue
            if timeout_seconds is not None:
                return
