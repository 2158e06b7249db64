"""
Request pipeline for the UAT Routing Service.

Orchestrates one routing request:
1. Fetch the work item from Azure DevOps
2. Fetch discussion comments (best effort)
3. Resolve the requestor identity (best effort)
4. Build the prompt and request a completion
5. Normalize the completion into a routing result

Batch requests run the same pipeline on a bounded thread pool.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Optional, Union

from .completion import CompletionClient
from .config import AppConfig
from .devops_client import DevOpsClient
from .identity import IdentityResolver, extract_email
from .models import (
    NOT_FOUND,
    BatchItemError,
    BatchResponse,
    RequestorSummary,
    ResolvedIdentity,
    RoutingResponse,
    TicketRecord,
)
from .prompt_builder import PromptBuilder


logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class RoutingService:
    """
    Routes work items to a recommendation.

    All collaborators are created once at startup and shared across
    requests; no per-request state is kept on the instance.
    """

    def __init__(
        self,
        devops: DevOpsClient,
        completion: CompletionClient,
        prompt_builder: PromptBuilder,
        identity_resolver: Optional[IdentityResolver] = None,
        batch_concurrency: int = 5,
    ):
        """
        Initialize the service.

        Args:
            devops: Work item tracker client.
            completion: Completion endpoint client.
            prompt_builder: Prompt assembler.
            identity_resolver: Optional directory resolver.
            batch_concurrency: Work items routed in parallel per batch.
        """
        self._devops = devops
        self._completion = completion
        self._prompt_builder = prompt_builder
        self._identity_resolver = identity_resolver
        self._batch_concurrency = max(1, batch_concurrency)

    def close(self) -> None:
        """Release HTTP clients owned by the collaborators."""
        self._devops.close()
        if self._identity_resolver is not None:
            self._identity_resolver.close()

    def _attach_comments(self, record: TicketRecord, project: Optional[str]) -> TicketRecord:
        if not project:
            return record
        comments = self._devops.get_work_item_comments(record.id, project)
        return record.model_copy(update={"comments": comments})

    def _resolve_requestor(self, record: TicketRecord) -> Optional[ResolvedIdentity]:
        if self._identity_resolver is None or record.requestors == NOT_FOUND:
            return None

        email = extract_email(record.requestors)
        if not email:
            logger.debug(f"No email in requestors of work item {record.id}")
            return None

        logger.info(f"Resolving identity for: {email}")
        return self._identity_resolver.resolve_identity(email)

    def route_ticket(self, work_item_id: Union[str, int], project: Optional[str] = None) -> RoutingResponse:
        """
        Produce a routing recommendation for one work item.

        Args:
            work_item_id: Work item id.
            project: Optional project; enables comment retrieval.

        Returns:
            RoutingResponse with the normalized result.

        Raises:
            NotFoundError: If the work item does not exist.
            UpstreamError: If the tracker or completion endpoint fails.
        """
        item_id = str(work_item_id).strip()
        logger.info(f"Processing work item: {item_id}")

        record = self._devops.get_work_item(item_id, project)
        record = self._attach_comments(record, project)
        identity = self._resolve_requestor(record)

        prompt = self._prompt_builder.build_prompt(record, identity)
        logger.info(f"Requesting routing recommendation for work item {item_id}")
        completion, result = self._completion.generate_routing_recommendation(prompt)

        requestor = result.requestor
        if identity is not None:
            requestor = RequestorSummary(
                email=identity.email,
                name=identity.name,
                title=identity.title,
                team=identity.team.value,
            )

        if result.is_parse_error:
            logger.warning(f"Completion for work item {item_id} could not be parsed: {result.parse_error}")
        else:
            logger.info(f"Work item {item_id} routed with tag {result.routing.tag!r}")

        return RoutingResponse(
            id=item_id,
            routing=result.routing,
            service=result.service,
            requestor=requestor,
            milestone=result.milestone,
            reasoning=result.reasoning,
            ask=result.ask,
            raw_completion_text=result.raw_completion_text,
            parse_error=result.parse_error,
            usage=completion.usage,
            timestamp=utc_timestamp(),
        )

    def _route_isolated(
        self,
        work_item_id: str,
        project: Optional[str],
    ) -> Union[RoutingResponse, BatchItemError]:
        try:
            return self.route_ticket(work_item_id, project)
        except Exception as e:
            # A failing item must not affect its siblings
            logger.error(f"Failed to route work item {work_item_id}: {e}")
            return BatchItemError(id=str(work_item_id), error=str(e))

    def route_batch(self, work_item_ids: list[str], project: Optional[str] = None) -> BatchResponse:
        """
        Route several work items concurrently.

        Args:
            work_item_ids: Work item ids; result order follows this order.
            project: Optional project applied to every item.

        Returns:
            BatchResponse with one success or error entry per id.
        """
        total = len(work_item_ids)
        logger.info(f"Processing {total} work items")

        with ThreadPoolExecutor(max_workers=self._batch_concurrency) as pool:
            results = list(pool.map(
                lambda item_id: self._route_isolated(item_id, project),
                work_item_ids,
            ))

        failed = sum(1 for r in results if isinstance(r, BatchItemError))
        logger.info(f"Batch complete: {total - failed}/{total} work items routed")
        return BatchResponse(total=total, results=results)


def build_service(config: AppConfig) -> RoutingService:
    """
    Construct the service and its collaborators from configuration.

    Args:
        config: Application configuration.

    Returns:
        Ready-to-use RoutingService.
    """
    identity_resolver = IdentityResolver(config.graph) if config.graph.enabled else None
    if identity_resolver is None:
        logger.info("Microsoft Graph not configured, identity resolution disabled")

    return RoutingService(
        devops=DevOpsClient(config.devops),
        completion=CompletionClient(config.llm),
        prompt_builder=PromptBuilder(config.prompt_template_path),
        identity_resolver=identity_resolver,
        batch_concurrency=config.batch_concurrency,
    )
