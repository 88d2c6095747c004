# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import os

import kubernetes.client
from kubernetes import config, client

from imagestream.util import existing_file
import imagestream.ctx
from kube.helper import KubernetesImageStreamHelper


class Ctx(object):
    '''
    handles the execution context of kubernetes-api calls.
    Most prominently the retrieval of the 'kubeconfig' to use, which is either configured
    explicitly, passed via env var KUBECONFIG, or (if running in a pod) the in-cluster config.
    '''

    def __init__(self, kubernetes_cfg: imagestream.ctx.KubernetesCfg | None = None):
        self.kubernetes_cfg = kubernetes_cfg or imagestream.ctx.KubernetesCfg()
        self._api_client = None

    def kubeconfig_path(self) -> str | None:
        if kubeconfig := self.kubernetes_cfg.kubeconfig:
            return existing_file(kubeconfig)
        if kubeconfig := os.environ.get('KUBECONFIG', None):
            return existing_file(kubeconfig)
        return None

    def api_client(self) -> kubernetes.client.ApiClient:
        if self._api_client:
            return self._api_client

        configuration = kubernetes.client.Configuration()
        if kubeconfig := self.kubeconfig_path():
            config.load_kube_config(
                config_file=kubeconfig,
                client_configuration=configuration,
            )
        else:
            config.load_incluster_config(client_configuration=configuration)

        self._api_client = kubernetes.client.ApiClient(configuration=configuration)
        return self._api_client

    def create_custom_api(self) -> client.CustomObjectsApi:
        return client.CustomObjectsApi(self.api_client())

    def image_stream_helper(self) -> KubernetesImageStreamHelper:
        return KubernetesImageStreamHelper(self.create_custom_api())
