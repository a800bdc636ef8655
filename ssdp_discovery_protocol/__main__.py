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
from signal import SIGINT, SIGTERM

from ssdp_discovery_protocol.internal_types import *

from ssdp_discovery_protocol import (
    __version__ as pkg_version,
    SsdpServer,
    SsdpClient,
    SsdpConfig,
    SsdpMessageInfo,
    SsdpResponseInfo,
    SsdpAdvertisementInfo,
    SSDP_ALL,
    SSDP_PORT,
    EVENT_ADVERTISE_ALIVE,
    EVENT_ADVERTISE_BYE,
    DEFAULT_RESPONSE_WAIT_TIME,
  )

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

def summarize_message_info(info: SsdpMessageInfo) -> JsonableDict:
    summary: JsonableDict = {
        "src_addr": f"{info.src_addr[0]}:{info.src_addr[1]}",
        "local_addr": info.socket_binding.iface.address,
        "headers": dict(info.headers),
        "monotonic_time": info.monotonic_time,
        "utc_time": info.utc_time.isoformat(),
    }
    if isinstance(info, SsdpResponseInfo):
        summary["status_code"] = info.status_code
    elif isinstance(info, SsdpAdvertisementInfo):
        summary["alive"] = info.alive
    return summary

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _parse_arg_headers(self, arg_headers: List[str]) -> Dict[str, Union[str, int]]:
        headers: Dict[str, Union[str, int]] = {}
        for header_assignment in arg_headers:
            if '=' not in header_assignment:
                raise CmdExitError(1, f"Header must be of the form <name>=<value>: {header_assignment!r}")
            name, value = header_assignment.split('=', 1)
            headers[name] = value
        return headers

    def _get_config(self, **overrides: Any) -> SsdpConfig:
        overrides = { k: v for k, v in overrides.items() if v is not None }
        config_file: Optional[str] = self._args.config_file
        if config_file is None:
            return SsdpConfig(**overrides)
        return SsdpConfig.load(config_file, **overrides)

    def _get_bind_addresses(self) -> Optional[List[str]]:
        """Returns the -b addresses, or None to enumerate local interfaces."""
        return self._args.bind_addresses or None

    @staticmethod
    def _add_bind_argument(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[], metavar='ADDRESS',
                            help='''A local interface address to use; repeatable. By default every non-loopback IPv4 interface is used.''')

    async def cmd_server(self) -> int:
        def notify_handler(info: SsdpMessageInfo) -> None:
            print(json.dumps(summarize_message_info(info), indent=2, sort_keys=True))
            sys.stdout.flush()

        headers = self._parse_arg_headers(self._args.headers)
        source_port: Optional[int] = self._args.source_port
        if source_port is None and self._args.config_file is None:
            # a server must listen on the SSDP port to hear multicast searches
            source_port = SSDP_PORT
        config = self._get_config(
            advertise_interval=self._args.advertise_interval,
            location=self._args.location,
            source_port=source_port,
            allow_wildcards=True if self._args.allow_wildcards else None,
            headers=headers if len(headers) > 0 else None,
          )
        server = SsdpServer(config=config, bind_addresses=self._get_bind_addresses())
        for service in self._args.services:
            server.add_service(service)
        server.add_handler(EVENT_ADVERTISE_ALIVE, notify_handler)
        server.add_handler(EVENT_ADVERTISE_BYE, notify_handler)

        loop = asyncio.get_running_loop()
        stop_requested = asyncio.Event()
        for signal in (SIGINT, SIGTERM):
            loop.add_signal_handler(signal, stop_requested.set)
        try:
            async with server:
                done_task = asyncio.create_task(server.wait_for_done())
                stop_task = asyncio.create_task(stop_requested.wait())
                await asyncio.wait([done_task, stop_task], return_when=asyncio.FIRST_COMPLETED)
                stop_task.cancel()
                if done_task.done():
                    # propagates a fatal server error
                    done_task.result()
                else:
                    logging.debug("cmd_server: Detected SIGINT/SIGTERM, stopping server")
                    done_task.cancel()
        finally:
            for signal in (SIGINT, SIGTERM):
                loop.remove_signal_handler(signal)
        return 0

    async def cmd_search(self) -> int:
        config = self._get_config()
        async with SsdpClient(config=config, bind_addresses=self._get_bind_addresses()) as client:
            responses = await client.collect_responses(
                search_target=self._args.search_target,
                response_wait_time=self._args.wait_time,
                max_responses=self._args.max_responses,
              )
            for info in responses:
                print(json.dumps(summarize_message_info(info), indent=2, sort_keys=True))
                sys.stdout.flush()
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Parses the command line given to the constructor (sys.argv[1:] if None), runs the
           selected command, and returns its exit code."""
        parser = NoExitArgumentParser(description="Advertise and discover services with SSDP.")

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Raise exceptions with a full traceback instead of printing a one-line error')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''Root logger level. Default: warning''')
        parser.add_argument('-c', '--config', dest='config_file', default=None,
                            help='''A JSON file of SsdpConfig options. Command-line options override it.''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='commands',
                            help='Run "<command> -h" for command options')


        # server: advertise and answer searches until interrupted

        parser_server = subparsers.add_parser('server', description="Run an SSDP server")
        parser_server.add_argument('-s', '--service', dest="services", action='append', default=[],
                            help='''A service identifier to advertise, e.g. "urn:schemas-upnp-org:service:ContentDirectory:1". May be repeated.''')
        parser_server.add_argument('--location', default=None,
                            help='''The LOCATION header value to advertise.''')
        parser_server.add_argument('--advertise-interval', dest='advertise_interval', default=None, type=float,
                            help='''The interval at which to send advertisements, in seconds. Default: 10''')
        parser_server.add_argument('--source-port', dest='source_port', default=None, type=int,
                            help=f'''The local port to listen on. Default: {SSDP_PORT}''')
        parser_server.add_argument('--allow-wildcards', dest='allow_wildcards', action='store_true', default=False,
                            help='''Allow "*" wildcards in received search targets (non-standard).''')
        parser_server.add_argument('-H', '--header', dest="headers", action='append', default=[],
                            help='''A <name>=<value> header to include in every message. May be repeated.''')
        self._add_bind_argument(parser_server)
        parser_server.set_defaults(func=self.cmd_server)

        # search: multicast one M-SEARCH and print the responses

        parser_search = subparsers.add_parser('search', description="Search for SSDP services")
        parser_search.add_argument('--st', dest='search_target', default=SSDP_ALL,
                            help=f'''The search target. Default: "{SSDP_ALL}"''')
        parser_search.add_argument('--wait-time', type=float, default=DEFAULT_RESPONSE_WAIT_TIME,
                            help=f'''Seconds to collect responses for. Default: {DEFAULT_RESPONSE_WAIT_TIME}''')
        self._add_bind_argument(parser_search)
        parser_search.add_argument('--max-responses', type=int, default=0,
                            help='Stop waiting once this many responses have arrived. Default: 0 (wait the full time)')
        parser_search.set_defaults(func=self.cmd_search)

        # version

        parser_version = subparsers.add_parser('version',
                                description='''Print the package version.''')
        parser_version.set_defaults(func=self.cmd_version)

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
            print(f"ssdp: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"ssdp: Unhandled exception: {ex}", file=sys.stderr)
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

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
