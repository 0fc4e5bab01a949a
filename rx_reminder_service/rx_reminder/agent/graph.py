# rx_reminder/agent/graph.py
from typing import Any, Dict, Optional

from langgraph.checkpoint.sqlite import SqliteSaver
from langgraph.graph import START, END, StateGraph

from rx_reminder.agent.nodes import confirm_node, create_node, manual_entry_node, parse_node, route_after_parse
from rx_reminder.agent.state import ScanState
from rx_reminder.db.db_config import get_sqlite_connection


def build_scan_graph(checkpointer):
    builder = StateGraph(ScanState)

    builder.add_node("parse", parse_node)
    builder.add_node("manual_entry", manual_entry_node)
    builder.add_node("confirm", confirm_node)
    builder.add_node("create", create_node)

    builder.add_edge(START, "parse")
    builder.add_conditional_edges("parse", route_after_parse, {
        "manual_entry": "manual_entry",
        "confirm": "confirm",
    })
    builder.add_edge("manual_entry", "parse")
    builder.add_edge("confirm", "create")
    builder.add_edge("create", END)

    return builder.compile(checkpointer=checkpointer)


def scan_config(scan_id: str) -> Dict[str, Any]:
    return {"configurable": {"thread_id": scan_id}}


def pending_interrupt(snap) -> Optional[Dict[str, Any]]:
    """Payload of the interrupt the scan is paused on, if any."""
    interrupts = list(getattr(snap, "interrupts", None) or ())
    if not interrupts:
        for task in getattr(snap, "tasks", None) or ():
            interrupts.extend(getattr(task, "interrupts", None) or ())
    if not interrupts:
        return None
    payload = interrupts[-1].value
    return payload if isinstance(payload, dict) else None


# centralized DB config
conn = get_sqlite_connection()
memory = SqliteSaver(conn)

scan_graph = build_scan_graph(memory)
