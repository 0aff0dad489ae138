"""CLI entry point for the Wattlink order-series engine."""

import argparse
import logging

from wattlink.config.loader import (
    get_config_value,
    load_config,
    save_config,
    set_config_value,
)
from wattlink.daemon import ResolverDaemon, daemon_status, stop_daemon
from wattlink.errors import (
    IllegalTransition,
    OracleUnavailable,
    PlanningError,
    UnknownOrder,
    UnknownSeries,
)
from wattlink.ingest.price_feed import PriceFeedClient
from wattlink.models.orders import OrderStatus
from wattlink.orders.state_machine import OrderStatusMachine
from wattlink.planning.planner import SeriesPlanner
from wattlink.reporting.formatters import (
    format_order_row,
    format_predicate_text,
    format_progress_text,
)
from wattlink.reporting.health_checker import HealthChecker
from wattlink.resolver.resolver import build_evaluator, build_resolver
from wattlink.storage import balance_repo, order_repo, series_repo, state_repo
from wattlink.storage.database import connect, run_migrations

DEFAULT_CONFIG = "ops/configs/default.yaml"
DEFAULT_DB = "data/wattlink.db"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="wattlink",
        description="Energy credit order-series scheduler and resolver",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="Config YAML path")
    parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database file")

    sub = parser.add_subparsers(dest="command")

    # plan
    plan_p = sub.add_parser("plan", help="Create an order series")
    plan_p.add_argument("owner", help="Owner identity (wallet address)")
    plan_p.add_argument("amount", help="Total amount to sell")
    plan_p.add_argument(
        "--strategy", default="time-weighted",
        help="time-weighted | hybrid-time-weighted | single-shot | limit",
    )
    plan_p.add_argument("--units", type=int, default=None, help="Number of slots")
    plan_p.add_argument("--max-price", type=float, default=None, help="Price ceiling")
    plan_p.add_argument("--oracle", default=None, help="Oracle reference")

    # resolve
    sub.add_parser("resolve", help="Run one resolver pass")

    # status
    status_p = sub.add_parser("status", help="Show series progress")
    status_p.add_argument("series_id", nargs="?", help="Series id (omit for overview)")
    status_p.add_argument(
        "--check", action="store_true", help="Also evaluate time and price conditions"
    )

    # orders
    orders_p = sub.add_parser("orders", help="List orders")
    orders_p.add_argument("--owner", default=None)
    orders_p.add_argument(
        "--status", default=None, choices=[s.value for s in OrderStatus]
    )
    orders_p.add_argument("--limit", type=int, default=50)

    # cancel / cancel-series
    cancel_p = sub.add_parser("cancel", help="Cancel one pending or active order")
    cancel_p.add_argument("order_id")
    cancel_s = sub.add_parser("cancel-series", help="Cancel every open order in a series")
    cancel_s.add_argument("series_id")

    # balance
    balance_p = sub.add_parser("balance", help="Show an owner's balances")
    balance_p.add_argument("owner")

    # pause / resume / health
    sub.add_parser("pause", help="Pause resolver passes")
    sub.add_parser("resume", help="Resume resolver passes")
    sub.add_parser("health", help="Check database, oracle and report backlog")

    # config show | config set section.key=value
    cfg_p = sub.add_parser("config", help="Inspect or edit the YAML config")
    cfg_actions = cfg_p.add_subparsers(dest="config_command")
    cfg_actions.add_parser("show", help="Print the effective config as JSON")
    cfg_set = cfg_actions.add_parser("set", help="Change one key and write the file back")
    cfg_set.add_argument("assignment", metavar="KEY=VALUE", help="e.g. resolver.max_workers=4")

    # daemon
    daemon_p = sub.add_parser("daemon", help="Run the resolver on a fixed interval")
    daemon_p.add_argument("--interval", type=int, default=None, help="Seconds between passes")
    daemon_p.add_argument("--stop", action="store_true", help="Stop a running daemon")
    daemon_p.add_argument("--status", action="store_true", help="Show daemon status")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    handlers = {
        "plan": _cmd_plan,
        "resolve": _cmd_resolve,
        "status": _cmd_status,
        "orders": _cmd_orders,
        "cancel": _cmd_cancel,
        "cancel-series": _cmd_cancel_series,
        "balance": _cmd_balance,
        "pause": _cmd_pause,
        "resume": _cmd_resume,
        "health": _cmd_health,
        "config": _cmd_config,
        "daemon": _cmd_daemon,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(config, args)


def _open(args):
    conn = connect(args.db)
    run_migrations(conn)
    return conn


def _cmd_plan(config, args) -> int:
    planner = SeriesPlanner(config.planner, config.schedule.minimum_interval)
    conn = _open(args)
    try:
        planned = planner.plan_and_save(
            conn,
            args.owner,
            args.amount,
            unit_count=args.units,
            strategy=args.strategy,
            price_ceiling=args.max_price,
            oracle_ref=args.oracle or config.oracle.default_oracle_ref,
        )
    except PlanningError as e:
        print(f"Error: {e}")
        return 1
    finally:
        conn.close()

    s = planned.series
    print(f"Series: {s.id}")
    print(
        f"Strategy: {s.strategy.value} | Total: {s.total_amount} {s.sell_unit} | "
        f"Units: {len(planned.orders)}"
    )
    for o in planned.orders:
        print(format_order_row(o))
    return 0


def _cmd_resolve(config, args) -> int:
    resolver = build_resolver(config, args.db)
    try:
        summary = resolver.run_pass()
    finally:
        resolver.evaluator.close()
    print(
        f"Pass {summary.pass_id[:8]}: {summary.series_examined} series, "
        f"{summary.fills} filled, {summary.gate_closed} waiting, "
        f"{summary.oracle_unavailable} oracle unavailable"
    )
    return 0 if not summary.errors else 1


def _cmd_status(config, args) -> int:
    conn = _open(args)
    try:
        machine = OrderStatusMachine(conn)
        if args.series_id is None:
            print(f"Paused: {state_repo.is_paused(conn)}")
            all_series = series_repo.list_series(conn)
            print(f"Series: {len(all_series)} | Open: {series_repo.count_open_series(conn)}")
            for s in all_series:
                print(f"  {s.owner} {s.strategy.value}: {format_progress_text(machine.progress(s.id))}")
            return 0

        try:
            progress = machine.progress(args.series_id)
        except UnknownSeries as e:
            print(f"Error: {e}")
            return 1
        print(format_progress_text(progress))
        for o in order_repo.get_orders_for_series(conn, args.series_id):
            print(format_order_row(o))

        if args.check:
            series = series_repo.get_series(conn, args.series_id)
            active = order_repo.get_active_order(conn, args.series_id)
            evaluator = build_evaluator(config, args.db)
            try:
                result = evaluator.evaluate(
                    series.id, series.oracle_ref, active.price_ceiling if active else None
                )
                print(format_predicate_text(result))
            except OracleUnavailable as e:
                print(f"Oracle unavailable: {e}")
            finally:
                evaluator.close()
        return 0
    finally:
        conn.close()


def _cmd_orders(config, args) -> int:
    conn = _open(args)
    try:
        status = OrderStatus(args.status) if args.status else None
        orders = order_repo.list_orders(conn, owner=args.owner, status=status, limit=args.limit)
        print(f"Orders: {len(orders)}")
        for o in orders:
            print(f"{o.series_id[-6:]} {format_order_row(o)}")
        return 0
    finally:
        conn.close()


def _cmd_cancel(config, args) -> int:
    conn = _open(args)
    try:
        order = OrderStatusMachine(conn).cancel(args.order_id)
        state_repo.log_operator_command(conn, "cancel", args=args.order_id, result="cancelled")
        print(f"Cancelled order {order.id} (slot {order.sequence})")
        return 0
    except (IllegalTransition, UnknownOrder) as e:
        print(f"Error: {e}")
        return 1
    finally:
        conn.close()


def _cmd_cancel_series(config, args) -> int:
    conn = _open(args)
    try:
        if series_repo.get_series(conn, args.series_id) is None:
            print(f"Error: series not found: {args.series_id}")
            return 1
        cancelled = OrderStatusMachine(conn).cancel_series(args.series_id)
        state_repo.log_operator_command(
            conn, "cancel-series", args=args.series_id, result=f"cancelled={len(cancelled)}"
        )
        print(f"Cancelled {len(cancelled)} orders in series {args.series_id[:12]}")
        return 0
    finally:
        conn.close()


def _cmd_balance(config, args) -> int:
    conn = _open(args)
    try:
        balances = balance_repo.list_balances(conn, args.owner)
        if not balances:
            print(f"{args.owner}: 0 {config.planner.buy_unit}")
        for b in balances:
            print(f"{b.owner}: {b.amount} {b.unit}")
        return 0
    finally:
        conn.close()


def _cmd_pause(config, args) -> int:
    conn = _open(args)
    state_repo.set_paused(conn, True)
    state_repo.log_operator_command(conn, "pause", result="paused")
    print("Resolver paused")
    conn.close()
    return 0


def _cmd_resume(config, args) -> int:
    conn = _open(args)
    state_repo.set_paused(conn, False)
    state_repo.log_operator_command(conn, "resume", result="resumed")
    print("Resolver resumed")
    conn.close()
    return 0


def _cmd_health(config, args) -> int:
    conn = _open(args)
    checker = HealthChecker(
        conn, PriceFeedClient(config.oracle.base_url, config.oracle.timeout_seconds)
    )
    status = checker.check()

    print(f"DB: {'OK' if status.db_connected else 'FAIL'}")
    print(f"Oracle: {'OK' if status.oracle_reachable else 'FAIL'}")
    if status.last_pass_age_minutes is not None:
        print(f"Last pass: {status.last_pass_age_minutes:.0f} min ago")
    else:
        print("Last pass: never")
    print(f"Paused: {status.paused}")
    print(f"Open series: {status.open_series}")
    print(f"Unreported fills: {status.unreported_fills}")
    conn.close()
    return 0 if status.ok else 1


def _cmd_config(config, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    if args.config_command != "set":
        print("usage: wattlink config {show,set KEY=VALUE}")
        return 1

    key, sep, value = args.assignment.partition("=")
    key = key.strip()
    if not sep or not key:
        print(f"Error: expected KEY=VALUE, got {args.assignment!r}")
        return 1
    try:
        updated = set_config_value(config, key, value.strip())
    except (KeyError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    save_config(updated, args.config)
    print(f"Set {key} = {get_config_value(updated, key)} in {args.config}")
    return 0


def _cmd_daemon(config, args) -> int:
    if args.stop:
        return stop_daemon()
    if args.status:
        return daemon_status()
    ResolverDaemon(config, db_path=args.db, interval=args.interval).start()
    return 0
