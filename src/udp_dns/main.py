"""
Session Protocol Main Entry Point

This script provides the entry points for running the lookup server and the
lookup client.
"""

import argparse
import sys
from typing import Optional

import yaml

from udp_dns.config import AppConfig, ConfigLoader
from udp_dns.core import ClientSession, RecordStore, ServerSession, UDPEndpoint
from udp_dns.core.errors import TransportFailure
from udp_dns.dns_logging import get_logger, log_exception, setup_logging


class ProtocolApp:
    """Session protocol application"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.config: Optional[AppConfig] = None
        self.logger = None

    def initialize(self) -> None:
        """Load configuration and set up logging"""
        config_loader = ConfigLoader(self.config_path)
        self.config = config_loader.load_config()

        setup_logging(self.config.logging)
        self.logger = get_logger("udp_dns.app")
        self.logger.info(
            "Configuration loaded",
            config_file=self.config_path,
            server=f"{self.config.network.server_address}:{self.config.network.server_port}",
            client=f"{self.config.network.client_address}:{self.config.network.client_port}",
        )

    def _open_endpoint(self, address: str, port: int) -> UDPEndpoint:
        network = self.config.network
        return UDPEndpoint(
            address,
            port,
            buffer_size=network.buffer_size,
            timeout=network.receive_timeout,
        ).open()

    def run_server(
        self, records_file: Optional[str] = None, max_sessions: Optional[int] = None
    ) -> int:
        """Run the server loop. Returns the process exit code."""
        network = self.config.network
        store = RecordStore.from_file(records_file or self.config.records.file)

        try:
            endpoint = self._open_endpoint(network.server_address, network.server_port)
        except TransportFailure as e:
            log_exception(self.logger, "Failed to start server", e)
            return 1

        self.logger.info(
            "Server started",
            address=f"{network.server_address}:{network.server_port}",
            records=len(store),
        )

        with endpoint:
            server = ServerSession(
                endpoint,
                store,
                lookups_per_session=self.config.session.lookups_per_session,
                bind_to_client=self.config.session.bind_to_client,
            )
            context = server.run(max_sessions=max_sessions)

        return 1 if context.failure is not None else 0

    def run_client(self) -> int:
        """Run one client session. Returns the process exit code."""
        network = self.config.network

        try:
            endpoint = self._open_endpoint(network.client_address, network.client_port)
        except TransportFailure as e:
            log_exception(self.logger, "Failed to start client", e)
            return 1

        self.logger.info(
            "Client started",
            address=f"{network.client_address}:{network.client_port}",
            server=f"{network.server_address}:{network.server_port}",
        )

        with endpoint:
            client = ClientSession(endpoint, network.server_endpoint)
            context = client.run()

        return 1 if context.failure is not None else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="UDP DNS lookup session protocol")
    parser.add_argument(
        "--config", "-c", default=None, help="Configuration file path (YAML or JSON)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    server_parser = subparsers.add_parser("server", help="Run the lookup server")
    server_parser.add_argument(
        "--records", "-r", default=None, help="DNS records file (JSON or YAML)"
    )
    server_parser.add_argument(
        "--sessions",
        type=int,
        default=None,
        help="Stop after this many client sessions (default: serve forever)",
    )

    subparsers.add_parser("client", help="Run one client session")
    return parser


def main(argv=None) -> int:
    """Main function"""
    args = build_parser().parse_args(argv)

    app = ProtocolApp(args.config)
    try:
        app.initialize()
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "server":
            return app.run_server(records_file=args.records, max_sessions=args.sessions)
        return app.run_client()
    except KeyboardInterrupt:
        app.logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
