# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

'''
ImageStream and ImageStreamImport model (image.openshift.io/v1)

attribute names follow the wire-representation (camelCase), except for python keywords
(`from`, `import`), which carry a trailing underscore.
'''

import dataclasses
import enum
import typing

import dacite

API_VERSION = 'image.openshift.io/v1'
DOCKER_IMAGE_KIND = 'DockerImage'
IMPORT_SUCCESS = 'ImportSuccess'

# presence (not content) means a repository-wide import was already attempted
REPOSITORY_CHECK_ANNOTATION = 'openshift.io/image.dockerRepositoryCheck'
INSECURE_REPOSITORY_ANNOTATION = 'openshift.io/image.insecureRepository'


_renamed_keys = {
    'from': 'from_',
    'import': 'import_',
}


class ConditionStatus(enum.StrEnum):
    TRUE = 'True'
    FALSE = 'False'
    UNKNOWN = 'Unknown'


_dacite_cfg = dacite.Config(
    cast=[ConditionStatus],
)


def _from_wire(raw):
    if isinstance(raw, dict):
        return {
            _renamed_keys.get(k, k): _from_wire(v)
            for k, v in raw.items()
        }
    if isinstance(raw, list):
        return [_from_wire(e) for e in raw]
    return raw


def _to_wire(raw):
    keys = {v: k for k, v in _renamed_keys.items()}
    if isinstance(raw, dict):
        return {
            keys.get(k, k): _to_wire(v)
            for k, v in raw.items()
            if v is not None
        }
    if isinstance(raw, list):
        return [_to_wire(e) for e in raw]
    if isinstance(raw, enum.Enum):
        return raw.value
    return raw


@dataclasses.dataclass
class ObjectMeta:
    name: str
    namespace: str | None = None
    uid: str | None = None
    resourceVersion: str | None = None
    generation: int = 0
    annotations: dict[str, str] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class ObjectReference:
    kind: str
    name: str
    namespace: str | None = None


@dataclasses.dataclass(frozen=True)
class LocalObjectReference:
    name: str


@dataclasses.dataclass
class TagImportPolicy:
    scheduled: bool = False
    insecure: bool = False


@dataclasses.dataclass
class TagReference:
    '''
    a spec-tag

    reference: if true, the tag is an alias for another tag and is never imported on its own
    generation: the spec-generation this tag was last set at; status is expected to catch up
    '''
    name: str
    from_: ObjectReference | None = None
    reference: bool = False
    generation: int | None = None
    importPolicy: TagImportPolicy = dataclasses.field(default_factory=TagImportPolicy)

    @property
    def importable(self) -> bool:
        if self.reference:
            return False
        if not self.from_:
            return False
        return self.from_.kind == DOCKER_IMAGE_KIND

    @property
    def scheduled(self) -> bool:
        return self.importable and self.importPolicy.scheduled


@dataclasses.dataclass
class TagEvent:
    created: str | None = None
    dockerImageReference: str | None = None
    image: str | None = None
    generation: int = 0


@dataclasses.dataclass
class TagEventCondition:
    type: str
    status: ConditionStatus
    generation: int = 0
    lastTransitionTime: str | None = None
    reason: str | None = None
    message: str | None = None


@dataclasses.dataclass
class TagEventList:
    tag: str
    items: list[TagEvent] = dataclasses.field(default_factory=list)
    conditions: list[TagEventCondition] = dataclasses.field(default_factory=list)

    def latest_generation(self) -> int | None:
        if not self.items:
            return None
        return max(item.generation for item in self.items)

    def failed_import_generation(self) -> int | None:
        '''
        returns the generation of a failed `ImportSuccess` condition, or None if there is no
        such condition (or if it does not report a failure)
        '''
        for condition in self.conditions:
            if condition.type != IMPORT_SUCCESS:
                continue
            if condition.status is ConditionStatus.FALSE:
                return condition.generation
            return None
        return None


@dataclasses.dataclass
class ImageStreamSpec:
    dockerImageRepository: str | None = None
    tags: dict[str, TagReference] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class ImageStreamStatus:
    dockerImageRepository: str | None = None
    tags: dict[str, TagEventList] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class ImageStream:
    metadata: ObjectMeta
    spec: ImageStreamSpec = dataclasses.field(default_factory=ImageStreamSpec)
    status: ImageStreamStatus = dataclasses.field(default_factory=ImageStreamStatus)

    @property
    def key(self) -> str:
        if not self.metadata.namespace:
            return self.metadata.name
        return f'{self.metadata.namespace}/{self.metadata.name}'

    @property
    def repository_checked(self) -> bool:
        return REPOSITORY_CHECK_ANNOTATION in self.metadata.annotations

    @property
    def insecure_repository(self) -> bool:
        return self.metadata.annotations.get(INSECURE_REPOSITORY_ANNOTATION) == 'true'

    def scheduled_tags(self) -> typing.Generator[TagReference, None, None]:
        for tag_ref in self.spec.tags.values():
            if tag_ref.scheduled:
                yield tag_ref

    @staticmethod
    def from_dict(raw: dict) -> 'ImageStream':
        '''
        parses the wire-representation, in which spec- and status-tags are lists rather than
        mappings (keyed by `name` and `tag`, respectively)
        '''
        raw = _from_wire(raw)
        spec = dict(raw.get('spec') or {})
        status = dict(raw.get('status') or {})

        spec['tags'] = {
            tag['name']: tag for tag in (spec.get('tags') or ())
        }
        # `items` and `conditions` are serialised as null if empty (e.g. if the only import failed)
        status['tags'] = {
            tag['tag']: {
                **tag,
                'items': tag.get('items') or [],
                'conditions': tag.get('conditions') or [],
            }
            for tag in (status.get('tags') or ())
        }

        metadata = dict(raw.get('metadata') or {})
        if metadata.get('annotations') is None:
            metadata['annotations'] = {}

        return dacite.from_dict(
            data_class=ImageStream,
            data={
                'metadata': metadata,
                'spec': spec,
                'status': status,
            },
            config=_dacite_cfg,
        )


@dataclasses.dataclass
class ImageImportSpec:
    from_: ObjectReference
    to: LocalObjectReference | None = None
    importPolicy: TagImportPolicy = dataclasses.field(default_factory=TagImportPolicy)


@dataclasses.dataclass
class RepositoryImportSpec:
    from_: ObjectReference
    importPolicy: TagImportPolicy = dataclasses.field(default_factory=TagImportPolicy)


@dataclasses.dataclass
class ImageStreamImportSpec:
    import_: bool = True
    images: list[ImageImportSpec] = dataclasses.field(default_factory=list)
    repository: RepositoryImportSpec | None = None


@dataclasses.dataclass
class ImageStreamImport:
    '''
    one-shot request to import the given images (and optionally a whole repository) into the
    image stream of the same name. `status` is filled in by the import pipeline and kept
    as received.
    '''
    metadata: ObjectMeta
    spec: ImageStreamImportSpec = dataclasses.field(default_factory=ImageStreamImportSpec)
    status: dict | None = None

    def tags(self) -> list[str]:
        return [image.to.name for image in self.spec.images if image.to]

    def as_dict(self) -> dict:
        raw = _to_wire(dataclasses.asdict(self))
        if not raw['metadata'].get('annotations'):
            raw['metadata'].pop('annotations', None)
        if not raw['metadata'].get('generation'):
            raw['metadata'].pop('generation', None)

        return {
            'apiVersion': API_VERSION,
            'kind': 'ImageStreamImport',
            **raw,
        }

    @staticmethod
    def from_dict(raw: dict) -> 'ImageStreamImport':
        raw = _from_wire(raw)
        metadata = dict(raw.get('metadata') or {})
        if metadata.get('annotations') is None:
            metadata['annotations'] = {}

        return dacite.from_dict(
            data_class=ImageStreamImport,
            data={
                'metadata': metadata,
                'spec': raw.get('spec') or {},
                'status': raw.get('status'),
            },
            config=_dacite_cfg,
        )


def image_streams_from_dict(raw: dict) -> typing.Generator[ImageStream, None, None]:
    '''
    yields image streams from either a single ImageStream or a `List` / `ImageStreamList`
    '''
    if 'items' in raw and raw.get('kind', 'List').endswith('List'):
        for item in raw['items']:
            yield ImageStream.from_dict(item)
        return

    yield ImageStream.from_dict(raw)
