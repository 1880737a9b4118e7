"""Stage transition API.

Front door for callers that move work items between stages:
- runs the transition (approval, uploads, optimistic apply, commit, queries)
- exposes the local work item cache the transition updates speculatively
- drives the notification preview/send that follows a committed transition

The authoritative state lives in the practice service (see stageflow.server).
"""

from fastapi import FastAPI

from stageflow.api.routes import register_routes

tags_metadata = [
    {
        "name": "Transitions",
        "description": "Stage transitions and the notifications that follow them"
    },
    {
        "name": "Work Items",
        "description": "Locally cached work items, including speculative stage changes"
    },
]

app = FastAPI(
    title='Stage Transition Workflow',
    version='1.0.0',
    description='Client-side stage transition orchestration',
    openapi_tags=tags_metadata
)

# Register all API routes
register_routes(app)
