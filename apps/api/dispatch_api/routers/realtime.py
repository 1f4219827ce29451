import asyncio

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from dispatch_api.auth.dependencies import auth_context_from_token
from dispatch_api.dependencies import connection_registry
from dispatch_api.observability import log_event, metrics_store

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = Query(default="")) -> None:
    """Push channel for assignment status changes and new delivery offers.

    Clients authenticate with ``?token=<jwt>`` and are keyed by the token subject,
    so drivers receive offers and customers receive updates about their orders.
    Inbound frames are ignored apart from keeping the connection open.
    """
    try:
        auth = auth_context_from_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict] = asyncio.Queue()

    def sender(message: dict) -> None:
        # Called from sync request handlers running in the threadpool
        loop.call_soon_threadsafe(outbox.put_nowait, message)

    connection_registry.register(auth.user_id, sender)
    metrics_store.increment("realtime_connections_total")
    log_event(f"realtime_connected:{auth.role}")
    try:
        await _pump(websocket, outbox)
    except WebSocketDisconnect:
        pass
    finally:
        connection_registry.unregister(auth.user_id, sender)
        log_event(f"realtime_disconnected:{auth.role}")


async def _pump(websocket: WebSocket, outbox: "asyncio.Queue[dict]") -> None:
    receive_task = asyncio.ensure_future(websocket.receive_text())
    send_task = asyncio.ensure_future(outbox.get())
    try:
        while True:
            done, _ = await asyncio.wait(
                {receive_task, send_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if receive_task in done:
                receive_task.result()
                receive_task = asyncio.ensure_future(websocket.receive_text())
            if send_task in done:
                await websocket.send_json(send_task.result())
                send_task = asyncio.ensure_future(outbox.get())
    finally:
        receive_task.cancel()
        send_task.cancel()
