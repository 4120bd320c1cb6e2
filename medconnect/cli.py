"""
Interactive console for MedConnect.
Log in with an access key, then manage connections and record sharing.
"""

import shlex

from medconnect.config import DOCTOR, PATIENT
from medconnect.connections import ConnectionService
from medconnect.database import init_engine, create_schema
from medconnect.errors import ConsentError
from medconnect.gates import FeatureGate
from medconnect.rbac import load_access_context
from medconnect.sharing import SharingService

HELP = """Commands:
  connections [status]          list your connections
  status <doctor_id>            (patient) your connection with a doctor
  request <doctor_id>           (patient) ask a doctor for a connection
  share <conn_id> <rec_id>...   (patient) share specific records
  unshare <conn_id> <rec_id>... (patient) stop sharing specific records
  share-all <conn_id>           (patient) share every record
  pending                       (doctor) pending requests
  approve|reject|revoke <id>    (doctor) respond to / end a connection
  view <patient_id>             (doctor) records a patient shares with you
  records <conn_id>             records visible on a connection
  gate <feature> <other_id>     is a feature allowed with the other party
  help | quit"""

PATIENT_ONLY = {"status", "request", "share", "unshare", "share-all"}
DOCTOR_ONLY = {"pending", "approve", "reject", "revoke", "view"}
COMMANDS = PATIENT_ONLY | DOCTOR_ONLY | {"help", "connections", "records", "gate"}


def _format_connection(c) -> str:
    return (f"#{c.connection_id} patient={c.patient_id} doctor={c.doctor_id} "
            f"status={c.status} requested={c.requested_at} responded={c.responded_at}")


def _format_records(result) -> str:
    lines = [f"mode={result.mode.value} ({len(result.records)} record(s))"]
    for r in result.records:
        lines.append(f"  {r.record_id}  {r.record_type:<14} {r.title}")
    return "\n".join(lines)


def _format_share(result) -> str:
    lines = [f"connection #{result.connection_id}: mode={result.mode.value} changed={result.changed}"]
    lines.extend(f"[WARN] {w}" for w in result.warnings)
    return "\n".join(lines)


def run_command(line: str, ctx, connections: ConnectionService,
                sharing: SharingService, gate: FeatureGate) -> str:
    """Execute one console command for *ctx* and return the text to print."""
    parts = shlex.split(line)
    if not parts:
        return ""
    cmd, args = parts[0].lower(), parts[1:]
    actor_id = ctx.actor_id()

    if cmd not in COMMANDS:
        return f"Unknown command '{cmd}'. Type 'help'."
    if cmd == "help":
        return HELP
    if cmd in PATIENT_ONLY and ctx.role != PATIENT:
        return f"'{cmd}' is only available to patients."
    if cmd in DOCTOR_ONLY and ctx.role != DOCTOR:
        return f"'{cmd}' is only available to doctors."

    try:
        ints = [int(a) for a in args] if cmd not in ("share", "unshare", "gate", "connections") else None
    except ValueError:
        return "Arguments must be numeric ids."

    if cmd == "connections":
        rows = connections.list_connections(ctx.role, actor_id, args[0] if args else None)
        return "\n".join(_format_connection(c) for c in rows) or "(no connections)"
    if cmd == "pending":
        rows = connections.pending_requests(actor_id)
        return "\n".join(_format_connection(c) for c in rows) or "(no pending requests)"

    if cmd in ("share", "unshare", "gate"):
        if len(args) < 2:
            return f"Usage: see 'help' for '{cmd}'."
        if cmd == "gate":
            other_id = int(args[1])
            pair = (actor_id, other_id) if ctx.role == PATIENT else (other_id, actor_id)
            allowed = gate.allowed(args[0], *pair)
            return f"{args[0]}: {'allowed' if allowed else 'not allowed'}"
        connection_id, record_ids = int(args[0]), args[1:]
        op = sharing.share_records if cmd == "share" else sharing.unshare_records
        return _format_share(op(connection_id, record_ids, actor_id))

    if len(ints) != 1:
        return f"Usage: {cmd} <id>"
    target = ints[0]

    if cmd == "status":
        c = connections.connection_status(actor_id, target)
        return _format_connection(c) if c else "(no connection)"
    if cmd == "request":
        return _format_connection(connections.request_connection(actor_id, target))
    if cmd == "approve":
        return _format_connection(connections.approve_connection(target, actor_id))
    if cmd == "reject":
        return _format_connection(connections.reject_connection(target, actor_id))
    if cmd == "revoke":
        connections.revoke_connection(target, actor_id)
        return f"Connection #{target} revoked."
    if cmd == "share-all":
        return _format_share(sharing.share_all_records(target, actor_id))
    if cmd == "records":
        return _format_records(sharing.visible_records(target, ctx.role, actor_id))
    if cmd == "view":
        return _format_records(sharing.view_patient_records(actor_id, target))

    return HELP


def main():
    print("=== MedConnect: Connections & Record Sharing Console ===\n")

    engine = init_engine()
    create_schema(engine)
    connections = ConnectionService.from_engine(engine)
    sharing = SharingService.from_engine(engine, connections)
    gate = FeatureGate(connections)

    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        ctx = load_access_context(engine, api_key)
    except ValueError as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {ctx.display_name} (role={ctx.role}, id={ctx.actor_id()})")
    print("Type 'help' for commands.")

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input(f"\n{ctx.role}> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            print(run_command(line, ctx, connections, sharing, gate))
        except ConsentError as e:
            print(f"\n[{e.kind.value}] {e.message}")
        except ValueError as e:
            print("\n[ERROR] Invalid input.")
            print("Details:", e)


if __name__ == "__main__":
    main()
