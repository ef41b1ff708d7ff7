"""
Async facade for request handlers.

The pixel work is synchronous and CPU bound (the bilateral filter alone is
O(W*H*r^2)), so every call is dispatched to a worker thread and the event
loop stays free for other requests. A timeout only abandons the result;
buffers are owned per call, so there is nothing to clean up.
"""
import asyncio, logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from .backend import ProcessingBackend, get_backend
from .models import CroppedPhoto, CropResult, NormalizedBox, Point2D
from .outpaint import decide_outpaint, photo_from_reply

logger = logging.getLogger(__name__)

AsyncOutpainter = Callable[[str, str, List[Point2D], int, int], Awaitable[str]]


class ScanSplitService:
    def __init__(self, backend: Optional[ProcessingBackend] = None):
        self.backend = backend or get_backend()

    async def _run(self, fn: Callable[..., Any], *args, timeout: Optional[float] = None) -> Any:
        call = asyncio.to_thread(fn, *args)
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout)

    async def crop(self, image_base64: str, mime_type: str, boxes: Sequence[NormalizedBox],
                   original_filename: str = "", timeout: Optional[float] = None) -> CropResult:
        return await self._run(self.backend.crop, image_base64, mime_type, list(boxes),
                               original_filename, timeout=timeout)

    async def rotate(self, image_base64: str, mime_type: str, degrees: int,
                     timeout: Optional[float] = None) -> str:
        return await self._run(self.backend.rotate, image_base64, mime_type, degrees, timeout=timeout)

    async def filters(self, image_base64: str, mime_type: str, names: Optional[Sequence[str]] = None,
                      timeout: Optional[float] = None) -> str:
        return await self._run(self.backend.filters, image_base64, mime_type, names, timeout=timeout)

    async def trim(self, image_base64: str, mime_type: str, timeout: Optional[float] = None) -> str:
        return await self._run(self.backend.trim, image_base64, mime_type, timeout=timeout)

    async def upscale(self, image_base64: str, mime_type: str, factor: Optional[float] = None,
                      timeout: Optional[float] = None) -> str:
        return await self._run(self.backend.upscale, image_base64, mime_type, factor, timeout=timeout)

    async def metadata(self, image_base64: str, mime_type: str) -> Dict[str, Any]:
        return await self._run(self.backend.metadata, image_base64, mime_type)

    async def outpaint(self, photo: CroppedPhoto, outpainter: AsyncOutpainter,
                       timeout: Optional[float] = None) -> CroppedPhoto:
        """Await the outpainting collaborator for an eligible crop; ineligible crops are returned as-is."""
        decision = decide_outpaint(photo.source_box, photo.width, photo.height)
        if not decision.eligible:
            logger.info("Photo %d not outpainted (%s)", photo.index, decision.reason)
            return photo
        call = outpainter(photo.image_base64, photo.mime_type, decision.contour,
                          decision.bbox_width, decision.bbox_height)
        reply = await (call if timeout is None else asyncio.wait_for(call, timeout))
        return await self._run(photo_from_reply, photo, reply)
