#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import asyncio
import logging
import time

from orvibo_protocol.internal_types import *

from orvibo_protocol import (
    __version__ as pkg_version,
    OrviboClient,
    OrviboEvent,
    ProtocolError,
    ALL_DEVICES,
    ORVIBO_PORT,
    EVENT_SOCKET_FOUND,
    EVENT_EXISTING_SOCKET_FOUND,
    EVENT_ALLONE_FOUND,
    EVENT_EXISTING_ALLONE_FOUND,
    EVENT_SUBSCRIBED,
    EVENT_STATE_CHANGED,
    EVENT_IR_CODE,
    normalize_mac,
  )

DEFAULT_WAIT_TIME = 3.0
"""The default amount of time (in seconds) to wait for devices to respond."""

CLI_EVENT_CAPACITY = 100

_found_events = (
    EVENT_SOCKET_FOUND,
    EVENT_EXISTING_SOCKET_FOUND,
    EVENT_ALLONE_FOUND,
    EVENT_EXISTING_ALLONE_FOUND,
)

EventPredicate = Callable[[OrviboEvent], bool]

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    def _create_client(self) -> OrviboClient:
        local_ip: Optional[str] = self._args.local_ip
        return OrviboClient(
            local_ip=local_ip,
            port=self._args.port,
            bind_address=self._args.bind_address,
            event_capacity=CLI_EVENT_CAPACITY,
          )

    async def _run_until(
            self,
            client: OrviboClient,
            wait_time: float,
            stop: Optional[EventPredicate]=None,
          ) -> Optional[OrviboEvent]:
        """Polls for wait_time seconds, subscribing to and querying devices as they answer.

        Returns the first event for which stop(event) is True, or None if the time ran out.
        """
        end_time = time.monotonic() + wait_time
        while True:
            event = client.get_event()
            while event is not None:
                logging.debug(f"Event: {event}")
                if event.name in _found_events:
                    client.subscribe()
                elif event.name == EVENT_SUBSCRIBED:
                    client.query()
                if stop is not None and stop(event):
                    return event
                event = client.get_event()
            remaining_time = end_time - time.monotonic()
            if remaining_time <= 0.0:
                return None
            try:
                await asyncio.wait_for(client.poll(), remaining_time)
            except asyncio.TimeoutError:
                return None
            except ProtocolError as e:
                logging.warning(f"Dropping undecodable datagram: {e}")

    async def _wait_for_device(self, client: OrviboClient, mac: str) -> None:
        """Discovers devices until the given device has confirmed our subscription"""
        client.discover()
        event = await self._run_until(
            client,
            self._args.wait_time,
            lambda e: e.name == EVENT_SUBSCRIBED and e.device.mac_address == mac,
          )
        if event is None:
            raise CmdExitError(1, f"Device {mac} did not respond within {self._args.wait_time} seconds")

    def _print_json(self, data: Jsonable) -> None:
        print(json.dumps(data, indent=2, sort_keys=True))
        sys.stdout.flush()

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    async def cmd_discover(self) -> int:
        async with self._create_client() as client:
            client.discover()
            await self._run_until(client, self._args.wait_time)
            self._print_json(client.list_devices())
        return 0

    async def _set_state(self, state: Optional[bool]) -> int:
        mac = normalize_mac(self._args.mac)
        async with self._create_client() as client:
            await self._wait_for_device(client, mac)
            if state is None:
                client.toggle_state(mac)
            else:
                client.set_state(mac, state)
            event = await self._run_until(
                client,
                self._args.wait_time,
                lambda e: e.name == EVENT_STATE_CHANGED and e.device.mac_address == mac,
              )
            if event is None:
                logging.warning(f"Device {mac} did not confirm the state change")
            device = client.registry[mac]
            self._print_json(device.to_jsonable())
        return 0

    async def cmd_set_state(self) -> int:
        state_str: str = self._args.state
        return await self._set_state(state_str == 'on')

    async def cmd_toggle(self) -> int:
        return await self._set_state(None)

    async def _emit(self, rf: bool) -> int:
        target: str = self._args.target
        async with self._create_client() as client:
            client.discover()
            await self._run_until(client, self._args.wait_time)
            if rf:
                n = client.emit_rf(self._args.code, target)
            else:
                n = client.emit_ir(self._args.code, target)
            if n == 0:
                raise CmdExitError(1, "No AllOne devices found")
            print(f"Sent to {n} device(s)")
        return 0

    async def cmd_emit_ir(self) -> int:
        return await self._emit(rf=False)

    async def cmd_emit_rf(self) -> int:
        return await self._emit(rf=True)

    async def cmd_learn_ir(self) -> int:
        target: str = self._args.target
        async with self._create_client() as client:
            client.discover()
            await self._run_until(client, self._args.wait_time)
            if client.enter_learning_mode(target) == 0:
                raise CmdExitError(1, "No AllOne devices found")
            print("Point a remote at the AllOne and press a button", file=sys.stderr)
            event = await self._run_until(client, self._args.learn_time, lambda e: e.name == EVENT_IR_CODE)
            if event is None:
                raise CmdExitError(1, f"No IR code learned within {self._args.learn_time} seconds")
            self._print_json(dict(mac_address=event.device.mac_address, ir_code=event.device.last_ir_message.hex()))
        return 0

    async def cmd_learn_rf(self) -> int:
        mac = normalize_mac(self._args.mac)
        async with self._create_client() as client:
            await self._wait_for_device(client, mac)
            client.enter_rf_learning_mode(mac)
            await self._run_until(client, self._args.learn_time)
            self._print_json(client.registry[mac].to_jsonable())
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the orvibo command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Discover and control Orvibo sockets and AllOne IR blasters.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--wait-time', dest='wait_time', type=float, default=DEFAULT_WAIT_TIME,
                            help=f'''The amount of time to wait for devices to respond, in seconds. Default: {DEFAULT_WAIT_TIME}''')
        parser.add_argument('--port', type=int, default=ORVIBO_PORT,
                            help=f'''The UDP port to listen and broadcast on. Default: {ORVIBO_PORT}''')
        parser.add_argument('-b', '--bind', dest='bind_address', default='',
                            help='''The local IP address to bind to. Default: all interfaces''')
        parser.add_argument('--local-ip', dest='local_ip', default=None,
                            help='''Our own IP address, used to ignore our own broadcasts. Default: autodetect''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Discover, subscribe to, and query devices, then list them")
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= set-state

        parser_set_state = subparsers.add_parser('set-state', description="Turn a socket on or off")
        parser_set_state.add_argument('mac', help='The MAC address of the socket')
        parser_set_state.add_argument('state', choices=['on', 'off'], help='The new state')
        parser_set_state.set_defaults(func=self.cmd_set_state)

        # ======================= toggle

        parser_toggle = subparsers.add_parser('toggle', description="Toggle the state of a socket")
        parser_toggle.add_argument('mac', help='The MAC address of the socket')
        parser_toggle.set_defaults(func=self.cmd_toggle)

        # ======================= emit-ir / emit-rf

        parser_emit_ir = subparsers.add_parser('emit-ir', description="Emit an IR code from AllOne devices")
        parser_emit_ir.add_argument('code', help='The IR code, as a hex string')
        parser_emit_ir.add_argument('-t', '--target', default=ALL_DEVICES,
                            help=f'''The MAC address of the AllOne to use, or {ALL_DEVICES}. Default: {ALL_DEVICES}''')
        parser_emit_ir.set_defaults(func=self.cmd_emit_ir)

        parser_emit_rf = subparsers.add_parser('emit-rf', description="Emit a 433MHz code from AllOne devices")
        parser_emit_rf.add_argument('code', help='The RF code, as a hex string')
        parser_emit_rf.add_argument('-t', '--target', default=ALL_DEVICES,
                            help=f'''The MAC address of the AllOne to use, or {ALL_DEVICES}. Default: {ALL_DEVICES}''')
        parser_emit_rf.set_defaults(func=self.cmd_emit_rf)

        # ======================= learn-ir / learn-rf

        parser_learn_ir = subparsers.add_parser('learn-ir', description="Learn an IR code with an AllOne")
        parser_learn_ir.add_argument('-t', '--target', default=ALL_DEVICES,
                            help=f'''The MAC address of the AllOne to use, or {ALL_DEVICES}. Default: {ALL_DEVICES}''')
        parser_learn_ir.add_argument('--learn-time', dest='learn_time', type=float, default=15.0,
                            help='''How long to wait for a code, in seconds. Default: 15''')
        parser_learn_ir.set_defaults(func=self.cmd_learn_ir)

        parser_learn_rf = subparsers.add_parser('learn-rf', description="Put an AllOne into 433MHz learning mode")
        parser_learn_rf.add_argument('mac', help='The MAC address of the AllOne')
        parser_learn_rf.add_argument('--learn-time', dest='learn_time', type=float, default=15.0,
                            help='''How long to listen afterwards, in seconds. Default: 15''')
        parser_learn_rf.set_defaults(func=self.cmd_learn_rf)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"orvibo: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"orvibo: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

def main() -> None:
    sys.exit(run())

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    main()
