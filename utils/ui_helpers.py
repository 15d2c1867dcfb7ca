import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable that controls CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _loan_row(loan: Any) -> Dict[str, Any]:
    return {
        "id": loan.id,
        "patron": loan.patron_name or str(loan.patron_id),
        "book": loan.book_title or str(loan.book_id),
        "due_at": loan.due_at.strftime("%Y-%m-%d %H:%M"),
        "status": loan.status.value,
        "fine": f"{loan.fine:.2f}",
    }


def print_loan_list(loans: List[Any], empty_message: str = "No loans found.") -> None:
    """Print loans in the current output mode.
    - plain: '#id Book -> Patron (due ..., STATUS, fine ...)' lines
    - json: JSON array
    - rich: Rich table
    """
    mode = get_output_mode()

    if not loans:
        print(empty_message)
        return

    rows = [_loan_row(l) for l in loans]
    if mode == "json":
        print(json.dumps(rows, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="Loans", show_lines=True, header_style="bold cyan")
        for column in ("ID", "Book", "Patron", "Due", "Status", "Fine"):
            table.add_column(column)
        for r in rows:
            table.add_row(str(r["id"]), r["book"], r["patron"], r["due_at"], r["status"], r["fine"])
        _console.print(table)
    else:
        for r in rows:
            print(f"#{r['id']} {r['book']} -> {r['patron']} (due {r['due_at']}, {r['status']}, fine {r['fine']})")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print library statistics in the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_books": "Total Books",
        "available_books": "Available Books",
        "loaned_books": "Books On Loan",
        "total_patrons": "Total Patrons",
        "active_patrons": "Active Patrons",
        "inactive_patrons": "Inactive Patrons",
        "total_loans": "Total Loans",
        "active_loans": "Active Loans",
        "overdue_loans": "Overdue Loans",
        "returned_loans": "Returned Loans",
        "total_fines": "Total Fines",
    }

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False, default=str))
    elif mode == "rich":
        content = "\n".join(f"[bold]{labels.get(k, k)}:[/] {v}" for k, v in stats.items())
        _console.print(Panel.fit(content, title="Stats", border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{labels.get(key, key)}: {value}")
