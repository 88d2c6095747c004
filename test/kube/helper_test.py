# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import unittest
from unittest.mock import MagicMock, patch

from kubernetes.client.rest import ApiException
from urllib3.exceptions import ProtocolError

import imagestream.model as im
import kube.helper as examinee
from imagestream.client import NotFoundError, StreamClientError


def raw_stream(name='test', namespace='other', resource_version='1'):
    return {
        'apiVersion': 'image.openshift.io/v1',
        'kind': 'ImageStream',
        'metadata': {
            'name': name,
            'namespace': namespace,
            'uid': '1',
            'resourceVersion': resource_version,
        },
        'spec': {
            'tags': [{
                'name': 'latest',
                'from': {'kind': 'DockerImage', 'name': 'test/other:latest'},
            }],
        },
    }


class KubernetesImageStreamHelperTest(unittest.TestCase):
    def setUp(self):
        self.custom_api = MagicMock()
        self.examinee = examinee.KubernetesImageStreamHelper(custom_api=self.custom_api)

    def test_get(self):
        self.custom_api.get_namespaced_custom_object.return_value = raw_stream()

        stream = self.examinee.get(namespace='other', name='test')

        self.assertEqual(stream.key, 'other/test')
        self.assertIn('latest', stream.spec.tags)
        self.custom_api.get_namespaced_custom_object.assert_called_once_with(
            group='image.openshift.io',
            version='v1',
            namespace='other',
            plural='imagestreams',
            name='test',
        )

    def test_get_not_found(self):
        self.custom_api.get_namespaced_custom_object.side_effect = ApiException(status=404)

        with self.assertRaises(NotFoundError):
            self.examinee.get(namespace='other', name='test')

    def test_get_other_error(self):
        self.custom_api.get_namespaced_custom_object.side_effect = ApiException(status=503)

        with self.assertRaises(StreamClientError) as ctx:
            self.examinee.get(namespace='other', name='test')

        self.assertNotIsInstance(ctx.exception, NotFoundError)
        self.assertIsInstance(ctx.exception.__cause__, ApiException)

    def test_create_import(self):
        isi = im.ImageStreamImport(
            metadata=im.ObjectMeta(name='test', namespace='other'),
            spec=im.ImageStreamImportSpec(images=[im.ImageImportSpec(
                from_=im.ObjectReference(kind='DockerImage', name='test/other:latest'),
                to=im.LocalObjectReference(name='latest'),
            )]),
        )
        self.custom_api.create_namespaced_custom_object.side_effect = \
            lambda **kwargs: {**kwargs['body'], 'status': {'images': []}}

        result = self.examinee.create_import(isi)

        self.assertEqual(result.tags(), ['latest'])
        self.assertEqual(result.status, {'images': []})
        kwargs = self.custom_api.create_namespaced_custom_object.call_args.kwargs
        self.assertEqual(kwargs['plural'], 'imagestreamimports')
        self.assertEqual(kwargs['namespace'], 'other')
        self.assertEqual(kwargs['body']['spec']['images'][0]['to'], {'name': 'latest'})

    def test_create_import_error(self):
        self.custom_api.create_namespaced_custom_object.side_effect = ApiException(status=500)
        isi = im.ImageStreamImport(metadata=im.ObjectMeta(name='test', namespace='other'))

        with self.assertRaises(StreamClientError):
            self.examinee.create_import(isi)

    @patch('kube.helper.watch.Watch')
    def test_watch(self, watch_mock):
        watch_mock.return_value.stream.return_value = iter([
            {'type': 'ADDED', 'object': raw_stream(resource_version='1')},
            {'type': 'BOOKMARK', 'object': {'metadata': {'resourceVersion': '2'}}},
            {'type': 'MODIFIED', 'object': raw_stream(resource_version='3')},
            {'type': 'DELETED', 'object': raw_stream(resource_version='4')},
        ])

        events = list(self.examinee.watch(namespace='other', timeout_seconds=10))

        self.assertEqual(
            [(t, s.metadata.resourceVersion) for t, s in events],
            [('ADDED', '1'), ('MODIFIED', '3'), ('DELETED', '4')],
        )
        args, kwargs = watch_mock.return_value.stream.call_args
        self.assertIs(args[0], self.custom_api.list_namespaced_custom_object)
        self.assertEqual(kwargs['namespace'], 'other')
        watch_mock.return_value.stop.assert_called()

    @patch('kube.helper.watch.Watch')
    def test_watch_restarts_after_expiry(self, watch_mock):
        watch_mock.return_value.stream.side_effect = [
            iter([
                {'type': 'ADDED', 'object': raw_stream(resource_version='1')},
                {'type': 'ERROR', 'object': {'code': 410, 'message': 'too old'}},
            ]),
            iter([
                {'type': 'ADDED', 'object': raw_stream(resource_version='9')},
            ]),
        ]

        events = list(self.examinee.watch(timeout_seconds=10))

        self.assertEqual([s.metadata.resourceVersion for _, s in events], ['1', '9'])
        first_call, second_call = watch_mock.return_value.stream.call_args_list
        self.assertIs(first_call.args[0], self.custom_api.list_cluster_custom_object)
        self.assertIsNone(second_call.kwargs['resource_version'])

    @patch('kube.helper.watch.Watch')
    def test_watch_reconnects_after_connection_error(self, watch_mock):
        def interrupted():
            yield {'type': 'ADDED', 'object': raw_stream(resource_version='1')}
            raise ProtocolError('Connection broken: IncompleteRead')

        watch_mock.return_value.stream.side_effect = [
            interrupted(),
            iter([
                {'type': 'MODIFIED', 'object': raw_stream(resource_version='2')},
            ]),
        ]

        events = list(self.examinee.watch(namespace='other', timeout_seconds=10))

        self.assertEqual([s.metadata.resourceVersion for _, s in events], ['1', '2'])
        first_call, second_call = watch_mock.return_value.stream.call_args_list
        self.assertIsNone(first_call.kwargs['resource_version'])
        # resumes from the last observed version
        self.assertEqual(second_call.kwargs['resource_version'], '1')

    @patch('kube.helper.watch.Watch')
    def test_watch_skips_malformed_objects(self, watch_mock):
        malformed = raw_stream(resource_version='2')
        malformed['spec']['tags'][0]['generation'] = 'not-a-number'
        watch_mock.return_value.stream.return_value = iter([
            {'type': 'ADDED', 'object': raw_stream(resource_version='1')},
            {'type': 'MODIFIED', 'object': malformed},
            {'type': 'MODIFIED', 'object': raw_stream(resource_version='3')},
        ])

        events = list(self.examinee.watch(timeout_seconds=10))

        self.assertEqual([s.metadata.resourceVersion for _, s in events], ['1', '3'])

    @patch('kube.helper.watch.Watch')
    def test_watch_error(self, watch_mock):
        watch_mock.return_value.stream.return_value = iter([
            {'type': 'ERROR', 'object': {'code': 403, 'message': 'forbidden'}},
        ])

        with self.assertRaises(StreamClientError):
            list(self.examinee.watch(timeout_seconds=10))
