import inspect
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Protocol, Union

from core.context import trace_id_var
from core.http import PipelineRequest, PipelineResponse

logger = logging.getLogger(__name__)

Handler = Callable[
    [PipelineRequest, PipelineResponse],
    Union[PipelineResponse, Awaitable[PipelineResponse]],
]


class Stage(Protocol):
    def handle(
        self, request: PipelineRequest, response: PipelineResponse, call_next: Handler
    ) -> Union[PipelineResponse, Awaitable[PipelineResponse]]: ...


async def _resolve(result: Any) -> PipelineResponse:
    if inspect.isawaitable(result):
        result = await result
    return result


class Pipeline:
    """Threads one (request, response) pair through the stages, then the route handler."""

    def __init__(self) -> None:
        self.stages: List[Stage] = []

    def add(self, stage: Stage) -> "Pipeline":
        self.stages.append(stage)
        return self

    async def execute(
        self,
        request: PipelineRequest,
        response: PipelineResponse,
        handler: Handler,
    ) -> PipelineResponse:
        # 沿用外层 (TraceMiddleware) 已设置的 TraceID
        trace_id = trace_id_var.get()
        if trace_id == "-":
            trace_id = uuid.uuid4().hex[:8]
        token = trace_id_var.set(trace_id)

        try:
            logger.debug(f"🔄 [Pipeline] 开始执行，TraceID={trace_id}, URI={request.uri}, 状态码={response.status_code}")

            async def _next(index: int, req: PipelineRequest, resp: PipelineResponse) -> PipelineResponse:
                if index >= len(self.stages):
                    return await _resolve(handler(req, resp))

                stage_name = type(self.stages[index]).__name__
                logger.debug(f"🔀 [Pipeline] 执行阶段 {stage_name}，TraceID={trace_id}")
                result = await _resolve(
                    self.stages[index].handle(req, resp, lambda r, s: _next(index + 1, r, s))
                )
                logger.debug(f"✅ [Pipeline] 阶段 {stage_name} 完成，状态码={result.status_code}")
                return result

            result = await _next(0, request, response)
            logger.info(f"✅ [Pipeline] 流程执行完成，TraceID={trace_id}，状态码={result.status_code}")
            return result

        except Exception as e:
            logger.error(f"❌ [Pipeline] 流程执行失败，TraceID={trace_id}，错误={e}", exc_info=True)
            raise
        finally:
            trace_id_var.reset(token)
