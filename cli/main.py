#!/usr/bin/env python3
import click
from decimal import Decimal, InvalidOperation
from .client import AuctionClient
from .config import save_token, get_default_auction, save_default_auction
from .batch_parser import parse_item_ids
import sys


def _parse_amount(value: str) -> Decimal:
    return Decimal(value.replace("$", "").replace(",", ""))


def _resolve_auction(auction_id):
    """Use the --auction option, falling back to the station's selected auction."""
    auction_id = auction_id or get_default_auction()
    if not auction_id:
        click.echo("No auction selected. Pass --auction or run 'silent-auction use AUCTION_ID'.", err=True)
        sys.exit(1)
    return auction_id


def _print_table(headers, rows, min_width=4):
    """Print rows in a box-drawn table."""
    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, value in enumerate(row):
            col_widths[i] = max(col_widths[i], len(str(value)))
    col_widths = [max(w, min_width) for w in col_widths]

    def build_separator(left, middle, right, widths):
        return left + middle.join("─" * (w + 2) for w in widths) + right

    click.echo(build_separator("┌", "┬", "┐", col_widths))
    click.echo("│ " + " │ ".join(f"{headers[i]:<{col_widths[i]}}" for i in range(len(headers))) + " │")
    click.echo(build_separator("├", "┼", "┤", col_widths))
    for row in rows:
        click.echo("│ " + " │ ".join(f"{str(row[i]):<{col_widths[i]}}" for i in range(len(row))) + " │")
    click.echo(build_separator("└", "┴", "┘", col_widths))


@click.group()
def cli():
    """Silent Auction Manager CLI"""
    pass


@cli.command()
@click.option("--username", default="admin", show_default=True)
@click.option("--password", prompt="Password", hide_input=True)
def auth(username, password):
    """Authenticate with the server."""
    try:
        client = AuctionClient()
        token = client.authenticate(username, password)
        save_token(token)
        click.echo("Authentication successful!")
    except Exception as e:
        click.echo(f"Authentication failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("auction_id", type=int)
def use(auction_id):
    """Select the auction this station enters bids for."""
    save_default_auction(auction_id)
    click.echo(f"Now entering bids for auction {auction_id}")


@cli.command()
@click.argument("item_id", type=int)
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
def inventory(item_id, auction_id):
    """Show how much of an item is still available."""
    auction_id = _resolve_auction(auction_id)
    try:
        client = AuctionClient()
        status = client.check_inventory(item_id, auction_id)
        click.echo(f"Item #{item_id} in auction {auction_id}")
        click.echo(f"Total: {status['total_quantity']}  Allocated: {status['allocated_quantity']}  "
                   f"Available: {status['available_quantity']}")
        if not status["can_add_bid"]:
            click.echo("No quantity left for new bids.")

        if status["existing_bids"]:
            rows = [
                (
                    str(bid["bid_id"]),
                    f"{bid['bidder_name']} ({bid['bidder_id']})",
                    f"${float(bid['winning_price']):.2f}",
                    str(bid["quantity_won"]),
                    client.to_local_time(bid["created_at"]),
                )
                for bid in status["existing_bids"]
            ]
            _print_table(["Bid", "Bidder", "Price", "Qty", "Entered (Local)"], rows)
    except Exception as e:
        click.echo(f"Failed to check inventory: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("item_id", type=int)
@click.argument("bidder_id", type=int)
@click.argument("price", type=str)
@click.option("--quantity", "-q", type=int, default=1, show_default=True)
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
def bid(item_id, bidder_id, price, quantity, auction_id):
    """Record the winning bid for an item (replaces any earlier winner)."""
    auction_id = _resolve_auction(auction_id)
    try:
        winning_price = _parse_amount(price)
        client = AuctionClient()
        result = client.save_bid(auction_id, item_id, bidder_id, winning_price, quantity)
        stats = result["stats"]
        click.echo(result["message"])
        click.echo(f"Auction {auction_id}: {stats['bid_count']} bids, "
                   f"${float(stats['total_revenue']):.2f} total revenue")
    except InvalidOperation:
        click.echo(f"Invalid price format: {price}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Failed to save bid: {e}", err=True)
        sys.exit(1)


@cli.command("update-bid")
@click.argument("bid_id", type=int)
@click.option("--bidder", "bidder_id", type=int, required=True)
@click.option("--quantity", "-q", type=int, required=True)
@click.option("--price", type=str, default=None, help="New price (keeps the current price if omitted)")
def update_bid(bid_id, bidder_id, quantity, price):
    """Change the bidder, quantity or price of an existing bid."""
    try:
        winning_price = _parse_amount(price) if price else None
        client = AuctionClient()
        result = client.update_bid(bid_id, bidder_id, quantity, winning_price)
        click.echo(result["message"])
    except InvalidOperation:
        click.echo(f"Invalid price format: {price}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Failed to update bid: {e}", err=True)
        sys.exit(1)


@cli.command("delete-bid")
@click.argument("item_id", type=int, required=False)
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
@click.option("--bid-id", type=int, help="Delete a single bid by its ID instead")
def delete_bid(item_id, auction_id, bid_id):
    """Delete the winning bid for an item, or a single bid by ID."""
    if bid_id is None and item_id is None:
        click.echo("Pass an ITEM_ID or --bid-id.", err=True)
        sys.exit(1)
    try:
        client = AuctionClient()
        if bid_id is not None:
            result = client.delete_bid_by_id(bid_id)
        else:
            result = client.delete_bid(_resolve_auction(auction_id), item_id)
        click.echo(result["message"])
    except Exception as e:
        click.echo(f"Failed to delete bid: {e}", err=True)
        sys.exit(1)


@cli.command("add-items")
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
def add_items(auction_id):
    """Batch enroll items in an auction from stdin.

    Reads item numbers from stdin until EOF, one per line. Supports:
    - 42
    - #42
    - 42, Signed guitar
    - item 42

    Ignores blank lines and comment lines starting with "# ".
    """
    auction_id = _resolve_auction(auction_id)
    try:
        parsed = parse_item_ids(sys.stdin.readlines())
        item_ids = [p.item_id for p in parsed if p.item_id is not None and not p.duplicate]

        server_results = {}
        if item_ids:
            client = AuctionClient()
            response = client.add_items_to_auction(auction_id, item_ids)
            server_results = {r["item_id"]: r for r in response["results"]}

        rows = []
        for p in parsed:
            if p.item_id is None:
                rows.append((str(p.row), "Invalid", "Error", "Could not find an item number"))
            elif p.duplicate:
                rows.append((str(p.row), str(p.item_id), "Duplicate", "Duplicate item in input"))
            else:
                server_result = server_results.get(p.item_id)
                if server_result and server_result["success"]:
                    rows.append((str(p.row), str(p.item_id), "Added", "-"))
                else:
                    reason = server_result.get("error_message") if server_result else "Item not processed"
                    rows.append((str(p.row), str(p.item_id), "Error", reason or "Unknown error"))

        added = sum(1 for r in rows if r[2] == "Added")
        errors = sum(1 for r in rows if r[2] == "Error")
        duplicates = sum(1 for r in rows if r[2] == "Duplicate")
        click.echo(f"Processed: {len(rows)}  Added: {added}  Errors: {errors}  Duplicates: {duplicates}\n")
        if rows:
            _print_table(["Row", "Item", "Result", "Reason"], rows)
    except KeyboardInterrupt:
        click.echo("\nCancelled.", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Failed to add items: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("bidder_id", type=int)
@click.argument("amount", type=str)
@click.option("--method", type=click.Choice(["cash", "check"]), required=True)
@click.option("--check-number", default=None)
@click.option("--notes", default=None)
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
def pay(bidder_id, amount, method, check_number, notes, auction_id):
    """Record a payment from a bidder."""
    auction_id = _resolve_auction(auction_id)
    try:
        amount_paid = _parse_amount(amount)
        client = AuctionClient()
        result = client.save_payment(bidder_id, auction_id, amount_paid, method, check_number, notes)
        click.echo(f"{result['message']} (payment {result['payment_id']})")
    except InvalidOperation:
        click.echo(f"Invalid amount format: {amount}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Failed to save payment: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
@click.option("--top", type=int, default=5, show_default=True, help="Number of top items to show")
def summary(auction_id, top):
    """Show auction totals and the highest-priced items."""
    auction_id = _resolve_auction(auction_id)
    try:
        client = AuctionClient()
        data = client.get_summary(auction_id)
        revenue = float(data["total_revenue"] or 0)
        click.echo(f"{data['auction_description']} ({data['auction_date']})")
        click.echo(f"Items: {data['total_items']}  Sold: {data['items_sold']}  Unsold: {data['items_unsold']}")
        click.echo(f"Bidders: {data['unique_bidders']}  Revenue: ${revenue:.2f}")

        performers = client.get_top_performers(auction_id, top)
        if performers:
            rows = [
                (p["item_name"], f"${float(p['winning_price']):.2f}", p["winner_name"])
                for p in performers
            ]
            click.echo("")
            _print_table(["Item", "Price", "Winner"], rows)
    except Exception as e:
        click.echo(f"Failed to get summary: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--auction", "auction_id", type=int, help="Auction ID (defaults to the selected auction)")
@click.option("--kind", type=click.Choice(["bidders", "items"]), default="bidders", show_default=True)
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None)
def export(auction_id, kind, output):
    """Export bidder payments or item results as CSV."""
    auction_id = _resolve_auction(auction_id)
    try:
        client = AuctionClient()
        content = client.export_csv(auction_id, kind)
        if output:
            with open(output, "w", newline="") as f:
                f.write(content)
            click.echo(f"Wrote {output}")
        else:
            click.echo(content, nl=False)
    except Exception as e:
        click.echo(f"Failed to export: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
