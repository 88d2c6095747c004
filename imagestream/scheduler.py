# SPDX-FileCopyrightText: 2024 SAP SE or an SAP affiliate company and Gardener contributors
#
# SPDX-License-Identifier: Apache-2.0

import collections.abc
import logging
import threading
import typing

logger = logging.getLogger(__name__)

Handler = collections.abc.Callable[[typing.Hashable, typing.Any], None]


class Scheduler:
    '''
    keyed set of entries that are periodically passed to `handle`. Entries are recurring, i.e.
    they stay registered after having been handled, until they are explicitly removed.

    All accesses to the entries are serialised through a lock; `handle` is always called
    without holding it, so handlers may (and are expected to) add or remove entries. Handlers
    that want to drop "their" entry should use `remove`, passing the value they were called
    with, so that an entry replaced concurrently (through `add`) is kept.
    '''
    def __init__(
        self,
        handle: Handler,
        interval_seconds: float,
    ):
        if not interval_seconds > 0:
            raise ValueError(f'interval must be positive: {interval_seconds=}')

        self.handle = handle
        self.interval_seconds = interval_seconds
        self._entries = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread = None

    def add(self, key: typing.Hashable, value):
        '''
        adds the given entry, replacing a previously existing one for the same key
        '''
        with self._lock:
            self._entries[key] = value

    def discard(self, key: typing.Hashable) -> bool:
        '''
        unconditionally removes the entry for key; returns whether there was one
        '''
        with self._lock:
            return self._entries.pop(key, None) is not None

    def remove(self, key: typing.Hashable, value) -> bool:
        '''
        removes the entry for key, if its value equals the passed value. Returns whether
        the entry was removed.
        '''
        with self._lock:
            if key not in self._entries:
                return False
            if self._entries[key] != value:
                return False
            del self._entries[key]
            return True

    def get(self, key: typing.Hashable):
        with self._lock:
            return self._entries.get(key)

    def snapshot(self) -> dict:
        with self._lock:
            return dict(self._entries)

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: typing.Hashable):
        with self._lock:
            return key in self._entries

    def run_once(self):
        entries = self.snapshot()
        failed = 0

        for key, value in entries.items():
            try:
                self.handle(key, value)
            except Exception:
                # do not let one entry's failure prevent others from being handled; the entry
                # is kept, and thus retried upon next run
                failed += 1
                logger.warning(f'scheduled check failed for {key=}', exc_info=True)

        logger.debug(f'handled {len(entries)} scheduled entries ({failed=})')

    def run(self, stop_event: threading.Event | None = None):
        '''
        calls `run_once` every `interval_seconds` until stop_event is set
        '''
        if not stop_event:
            stop_event = self._stop_event

        logger.info(f'scheduler started ({self.interval_seconds=})')
        while not stop_event.wait(timeout=self.interval_seconds):
            self.run_once()
        logger.info('scheduler stopped')

    def start(self) -> threading.Thread:
        if self._thread and self._thread.is_alive():
            raise RuntimeError('scheduler is already running')

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            name='imagestream-scheduler',
            daemon=True,
        )
        self._thread.start()

        return self._thread

    def stop(self, timeout: float | None = None):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def __repr__(self):
        return f'{self.__class__.__qualname__}({len(self)} entries, {self.interval_seconds=})'
