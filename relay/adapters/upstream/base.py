from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence


FileField = tuple[str, tuple[str, bytes, str]]


class AbstractUpstreamClient(ABC):
	"""Interface for the completions API the relay forwards to."""

	@abstractmethod
	async def post_json(self, path: str, payload: Any) -> Any:
		"""POST a JSON document and return the decoded JSON reply.

		Args:
			path: Endpoint path relative to the client's base URL.
			payload: JSON-serializable body, sent as-is.

		Returns:
			Any: The upstream JSON body, unmodified.

		Raises:
			UpstreamAppError: On network failure, timeout, non-2xx status or a
				reply that is not JSON.
		"""
		...

	@abstractmethod
	async def forward_json(self, path: str, body: bytes) -> Any:
		"""POST an already encoded JSON document byte for byte.

		Args:
			path: Endpoint path relative to the client's base URL.
			body: Raw JSON bytes as received from the client.

		Raises:
			UpstreamAppError: Same conditions as ``post_json``.
		"""
		...

	@abstractmethod
	async def post_form(
		self,
		path: str,
		*,
		data: Mapping[str, str],
		files: Sequence[FileField],
	) -> Any:
		"""POST a multipart form and return the decoded JSON reply.

		Args:
			path: Endpoint path relative to the client's base URL.
			data: Plain form fields.
			files: ``(field, (filename, content, content_type))`` entries.

		Raises:
			UpstreamAppError: Same conditions as ``post_json``.
		"""
		...

	async def aclose(self) -> None:
		"""Release network resources. No-op by default."""
