"""
Request dependencies shared by the routes.
"""

from typing import Annotated

from fastapi import Depends, Request

from jobqueue.worker.main import JobQueue


def get_queue(request: Request) -> JobQueue:
    """The job queue owned by the application."""
    return request.app.state.queue


Queue = Annotated[JobQueue, Depends(get_queue)]
