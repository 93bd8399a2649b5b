"""
dposgov/api.py

REST API server for producer governance.

Read endpoints expose producers, voters, proxies, the elected schedule and
metrics. Write endpoints accept signed action documents and hand them to
the GovernanceContract.
"""

import json
import logging
import time
import trio
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

from . import __version__
from .errors import (
    GovernanceError,
    ValidationError,
    NotFoundError,
    AuthorizationError,
)
from .metrics import GovernanceMetrics
from .protocol.actions import (
    RegisterProducerAction,
    UnregisterProducerAction,
    VoteProducerAction,
    RegisterProxyAction,
    ChangeStakeAction,
)
from .protocol.governance import GovernanceContract

logger = logging.getLogger("dposgov.api")

STATUS_TEXT = {
    200: "OK",
    201: "Created",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
    500: "Internal Server Error",
}


@dataclass
class Request:
    """HTTP request representation."""
    method: str
    path: str
    query: Dict[str, List[str]]
    headers: Dict[str, str]
    body: bytes
    path_params: Dict[str, str] = field(default_factory=dict)

    def json(self) -> Dict[str, Any]:
        """Decode the JSON object body."""
        if not self.body:
            raise ValidationError("Request body required")
        try:
            data = json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
            raise ValidationError("Invalid JSON")
        if not isinstance(data, dict):
            raise ValidationError("JSON object expected")
        return data


@dataclass
class Response:
    """HTTP response representation."""
    status: int
    headers: Dict[str, str]
    body: bytes

    @classmethod
    def json(cls, data: Any, status: int = 200) -> "Response":
        body = json.dumps(data, indent=2).encode("utf-8")
        return cls(
            status=status,
            headers={"Content-Type": "application/json"},
            body=body,
        )

    @classmethod
    def text(cls, text: str, status: int = 200, content_type: str = "text/plain") -> "Response":
        return cls(
            status=status,
            headers={"Content-Type": content_type},
            body=text.encode("utf-8"),
        )

    @classmethod
    def error(cls, message: str, status: int = 400) -> "Response":
        return cls.json({"error": message}, status=status)

    @classmethod
    def from_exception(cls, error: GovernanceError) -> "Response":
        """Map a governance error to its HTTP status."""
        if isinstance(error, ValidationError):
            status = 400
        elif isinstance(error, AuthorizationError):
            status = 403
        elif isinstance(error, NotFoundError):
            status = 404
        else:
            status = 500
        return cls.error(error.message, status=status)


class GovernanceAPI:
    """
    REST API server for a GovernanceContract.

    Usage:
        contract = GovernanceContract(state, config)
        api = GovernanceAPI(contract, host="0.0.0.0", port=8888)
        await api.start()
    """

    def __init__(
        self,
        contract: GovernanceContract,
        host: str = "127.0.0.1",
        port: int = 8888,
        enable_metrics: bool = True,
        metrics: Optional[GovernanceMetrics] = None,
    ):
        self.contract = contract
        self.host = host
        self.port = port
        self.enable_metrics = enable_metrics

        self.metrics = metrics
        if self.metrics is None and enable_metrics:
            self.metrics = GovernanceMetrics(contract)

        self._running = False
        self._start_time = time.time()

        self._routes: Dict[Tuple[str, str], Callable] = {
            ("GET", "/"): self._handle_root,
            ("GET", "/health"): self._handle_health,
            ("GET", "/state"): self._handle_state,
            ("GET", "/producers"): self._handle_get_producers,
            ("POST", "/producers"): self._handle_register_producer,
            ("GET", "/producers/{owner}"): self._handle_get_producer,
            ("DELETE", "/producers/{owner}"): self._handle_unregister_producer,
            ("GET", "/voters/{owner}"): self._handle_get_voter,
            ("POST", "/votes"): self._handle_vote,
            ("GET", "/proxies"): self._handle_get_proxies,
            ("POST", "/proxies"): self._handle_register_proxy,
            ("POST", "/stake"): self._handle_change_stake,
            ("GET", "/schedule"): self._handle_get_schedule,
            ("GET", "/metrics"): self._handle_metrics,
        }

    async def start(self) -> None:
        """Start the API server (runs until cancelled)."""
        if self._running:
            logger.warning("API server already running")
            return

        self._running = True
        logger.info(f"Starting REST API server on {self.host}:{self.port}")
        try:
            await trio.serve_tcp(self._handle_connection, self.port, host=self.host)
        finally:
            self._running = False
            logger.info("REST API server stopped")

    async def _handle_connection(self, stream: trio.SocketStream) -> None:
        try:
            request = await self._read_request(stream)
            if not request:
                return
            response = await self._route_request(request)
            await self._send_response(stream, response)
        except trio.BrokenResourceError as e:
            logger.debug(f"Client went away: {e}")
        except Exception as e:
            logger.error(f"Connection error: {e!r}")
            try:
                await self._send_response(stream, Response.error("Internal error", status=500))
            except trio.BrokenResourceError:
                logger.debug("Client went away before the error response")
        finally:
            await stream.aclose()

    async def _read_request(self, stream: trio.SocketStream) -> Optional[Request]:
        """Read and parse HTTP request."""
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = await stream.receive_some(4096)
            if not chunk:
                return None
            data += chunk

        header_end = data.index(b"\r\n\r\n")
        header_data = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_data.split("\r\n")
        request_line = lines[0].split(" ")
        method = request_line[0]
        path_with_query = request_line[1] if len(request_line) > 1 else "/"

        parsed = urlparse(path_with_query)

        headers = {}
        for line in lines[1:]:
            if ":" in line:
                key, value = line.split(":", 1)
                headers[key.strip().lower()] = value.strip()

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            content_length = 0
        while len(body) < content_length:
            chunk = await stream.receive_some(4096)
            if not chunk:
                break
            body += chunk

        return Request(
            method=method,
            path=parsed.path,
            query=parse_qs(parsed.query),
            headers=headers,
            body=body[:content_length] if content_length else body,
        )

    async def _send_response(self, stream: trio.SocketStream, response: Response) -> None:
        status_text = STATUS_TEXT.get(response.status, "Unknown")
        lines = [f"HTTP/1.1 {response.status} {status_text}"]

        response.headers["Content-Length"] = str(len(response.body))
        response.headers["Connection"] = "close"
        response.headers["Server"] = f"dposgov/{__version__}"

        for key, value in response.headers.items():
            lines.append(f"{key}: {value}")

        lines.append("")
        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        await stream.send_all(header_bytes + response.body)

    async def _route_request(self, request: Request) -> Response:
        """Route request to its handler, mapping governance errors to statuses."""
        handler = self._routes.get((request.method, request.path))
        if handler is None:
            for (method, pattern), candidate in self._routes.items():
                if method != request.method:
                    continue
                match, params = self._match_path(pattern, request.path)
                if match:
                    request.path_params = params
                    handler = candidate
                    break

        if handler is None:
            return Response.error("Not Found", status=404)

        try:
            return await handler(request)
        except GovernanceError as e:
            return Response.from_exception(e)
        except (KeyError, TypeError, ValueError) as e:
            return Response.error(f"Invalid request: {e}", status=400)

    def _match_path(self, pattern: str, path: str) -> Tuple[bool, Dict[str, str]]:
        """Match path against pattern with parameters."""
        pattern_parts = pattern.split("/")
        path_parts = path.split("/")

        if len(pattern_parts) != len(path_parts):
            return False, {}

        params = {}
        for p_part, path_part in zip(pattern_parts, path_parts):
            if p_part.startswith("{") and p_part.endswith("}"):
                params[p_part[1:-1]] = path_part
            elif p_part != path_part:
                return False, {}

        return True, params

    # ========== Route Handlers ==========

    async def _handle_root(self, request: Request) -> Response:
        return Response.json({
            "name": "dposgov",
            "version": __version__,
            "endpoints": list(f"{m} {p}" for (m, p) in self._routes.keys()),
        })

    async def _handle_health(self, request: Request) -> Response:
        return Response.json({
            "status": "healthy",
            "activated": self.contract.state.global_state.is_activated(),
            "uptime_seconds": time.time() - self._start_time,
        })

    async def _handle_state(self, request: Request) -> Response:
        return Response.json(self.contract.get_stats())

    async def _handle_get_producers(self, request: Request) -> Response:
        """List producers; ?order=votes walks the vote index."""
        by_votes = request.query.get("order", [""])[0] == "votes"
        producers = self.contract.list_producers(by_votes=by_votes)
        return Response.json({
            "count": len(producers),
            "producers": [p.to_dict() for p in producers],
        })

    async def _handle_get_producer(self, request: Request) -> Response:
        owner = request.path_params.get("owner", "")
        return Response.json(self.contract.get_producer(owner).to_dict())

    async def _handle_register_producer(self, request: Request) -> Response:
        action = RegisterProducerAction.from_dict(self._require_fields(request, "owner"))
        producer = self.contract.register_producer(action)
        return Response.json(producer.to_dict(), status=201)

    async def _handle_unregister_producer(self, request: Request) -> Response:
        owner = request.path_params.get("owner", "")
        data = request.json() if request.body else {}
        data["owner"] = owner
        producer = self.contract.unregister_producer(UnregisterProducerAction.from_dict(data))
        return Response.json(producer.to_dict())

    async def _handle_get_voter(self, request: Request) -> Response:
        owner = request.path_params.get("owner", "")
        return Response.json(self.contract.get_voter(owner).to_dict())

    async def _handle_vote(self, request: Request) -> Response:
        action = VoteProducerAction.from_dict(self._require_fields(request, "voter"))
        voter = self.contract.vote_producer(action)
        return Response.json(voter.to_dict())

    async def _handle_get_proxies(self, request: Request) -> Response:
        proxies = self.contract.list_proxies()
        return Response.json({
            "count": len(proxies),
            "proxies": [p.to_dict() for p in proxies],
        })

    async def _handle_register_proxy(self, request: Request) -> Response:
        action = RegisterProxyAction.from_dict(self._require_fields(request, "proxy"))
        voter = self.contract.register_proxy(action)
        return Response.json(voter.to_dict())

    async def _handle_change_stake(self, request: Request) -> Response:
        """Stake change from the staking ledger, signed by the ledger address."""
        action = ChangeStakeAction.from_dict(self._require_fields(request, "account"))
        voter = self.contract.apply_stake_change(action)
        return Response.json(voter.to_dict())

    async def _handle_get_schedule(self, request: Request) -> Response:
        schedule = self.contract.get_schedule()
        if schedule is None:
            return Response.error("No schedule elected yet", status=404)
        return Response.json(schedule.to_dict())

    async def _handle_metrics(self, request: Request) -> Response:
        if not self.metrics:
            return Response.error("Metrics not enabled", status=404)
        return Response.text(
            self.metrics.collect(),
            content_type="text/plain; version=0.0.4; charset=utf-8",
        )

    @staticmethod
    def _require_fields(request: Request, *names: str) -> Dict[str, Any]:
        data = request.json()
        for name in names:
            if not data.get(name):
                raise ValidationError(f"{name} is required")
        return data
