from fastapi import APIRouter, Depends, HTTPException

from stageflow.api.core.container import get_container
from stageflow.domain.stages import WorkItem

router = APIRouter(prefix="/work-items", tags=["Work Items"])


@router.get("/{work_item_id}", response_model=WorkItem)
async def get_work_item(work_item_id: str, container=Depends(get_container)):
    """Return the locally cached view of a work item, speculative changes included."""
    item = container.orchestrator.reconciler.current(work_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Work item not cached")
    return item


@router.put("/{work_item_id}", response_model=WorkItem)
async def refresh_work_item(work_item_id: str, item: WorkItem, container=Depends(get_container)):
    """Store the authoritative view of a work item, e.g. after a reload."""
    if item.id != work_item_id:
        raise HTTPException(status_code=400, detail="Work item id does not match the path")
    reconciler = container.orchestrator.reconciler
    reconciler.refresh(item)
    return reconciler.current(work_item_id)
