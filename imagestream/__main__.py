# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import argparse
import collections.abc
import logging
import sys

import dacite
import termcolor

import imagestream.client
import imagestream.controller
import imagestream.ctx
import imagestream.decision
import imagestream.log
import imagestream.model as im
import imagestream.util

logger = logging.getLogger(__name__)


def _colour(state: imagestream.decision.TagImportState) -> str | None:
    if state.needs_import:
        return 'green'
    if state is imagestream.decision.TagImportState.FAILURE_SUPPRESSED:
        return 'yellow'
    return None


def _print(msg: str, colour: str | None=None):
    if colour and sys.stdout.isatty():
        msg = termcolor.colored(msg, colour)
    print(msg)


def check(parsed, cfg: imagestream.ctx.ControllerConfig):
    for path in parsed.files:
        for raw in imagestream.util.load_yaml_documents(path):
            for stream in im.image_streams_from_dict(raw):
                decision = imagestream.decision.needs_import(stream)

                _print(f'{stream.key}:', colour='cyan')
                if stream.spec.dockerImageRepository:
                    _print(
                        f'  repository {stream.spec.dockerImageRepository}: '
                        f'{"import" if decision.repository else "already checked"}',
                        colour='green' if decision.repository else None,
                    )
                for tag, state in sorted(imagestream.decision.tag_import_states(stream)):
                    _print(f'  tag {tag}: {state.value}', colour=_colour(state))
                if not decision:
                    _print('  no import needed')


def handle_events(
    events: collections.abc.Iterable[tuple[str, im.ImageStream]],
    controller: imagestream.controller.ImportController,
    scheduled: imagestream.controller.ScheduledImportController,
):
    '''
    imports each added or modified image stream (if needed) and (re-)schedules it; deleted
    image streams are dropped from the scheduler
    '''
    for event_type, stream in events:
        if event_type == 'DELETED':
            scheduled.forget(stream)
            continue

        try:
            controller.reconcile(stream)
        except (imagestream.client.StreamClientError, dacite.DaciteError):
            # will be retried upon next update of the stream
            logger.warning(f'{stream.key}: import failed', exc_info=True)

        scheduled.enqueue(stream)


def run(parsed, cfg: imagestream.ctx.ControllerConfig):
    import kube.ctx

    streams = kube.ctx.Ctx(cfg.kubernetes).image_stream_helper()
    controller = imagestream.controller.ImportController(streams=streams)
    scheduled = imagestream.controller.ScheduledImportController(
        controller=controller,
        interval_seconds=cfg.scheduler.interval_seconds,
        enabled=cfg.scheduler.enabled,
    )

    if cfg.scheduler.enabled:
        scheduled.scheduler.start()

    try:
        handle_events(
            events=streams.watch(namespace=cfg.kubernetes.namespace),
            controller=controller,
            scheduled=scheduled,
        )
    finally:
        scheduled.scheduler.stop()


def main():
    parser = argparse.ArgumentParser(
        prog='imagestream-controller',
        description='imports image stream tags from remote registries',
    )
    subcmd_parsers = parser.add_subparsers(
        title='commands',
        required=True,
    )

    parser.add_argument('--config', default=None, help='path to a YAML configuration file')
    parser.add_argument('--kubeconfig', default=None)
    parser.add_argument('--namespace', default=None, help='defaults to all namespaces')
    parser.add_argument(
        '--log-level',
        default=None,
        choices=('DEBUG', 'INFO', 'WARNING', 'ERROR'),
    )

    check_parser = subcmd_parsers.add_parser(
        'check',
        help='print import decisions for image stream manifests (YAML or JSON)',
    )
    check_parser.set_defaults(callable=check)
    check_parser.add_argument(
        'files',
        nargs='+',
    )

    run_parser = subcmd_parsers.add_parser(
        'run',
        help='watch image streams and import them (and periodically re-import scheduled tags)',
    )
    run_parser.set_defaults(callable=run)

    parsed = parser.parse_args()

    cfg = imagestream.ctx.load_config(
        path=parsed.config,
        overrides={
            'kubernetes': {
                'kubeconfig': parsed.kubeconfig,
                'namespace': parsed.namespace,
            },
            'log_level': parsed.log_level,
        },
    )
    imagestream.log.configure_default_logging(
        stdout_level=getattr(logging, cfg.log_level.upper()),
        print_thread_id=True,
    )

    try:
        parsed.callable(
            parsed=parsed,
            cfg=cfg,
        )
    except KeyboardInterrupt:
        exit(130)
    except (imagestream.client.StreamClientError, dacite.DaciteError, ValueError) as e:
        logger.error(e)
        exit(1)


if __name__ == '__main__':
    main()
