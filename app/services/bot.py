"""
Conversational ordering over WhatsApp.

Each sender has one chat session. The session ``state`` records what was
last listed, so a bare number can be read as a choice from that list:

    idle      nothing listed yet
    menu      categories listed; context["category_ids"] maps 1..N to ids
    category  products listed; context["product_ids"] maps 1..N to ids

The cart lives in chat_session_items and survives state changes until the
customer checks out or clears it.
"""

import logging
import re

from app.models import catalog, chat_sessions, orders
from app.models.orders import OrderValidationError

logger = logging.getLogger(__name__)

GREETINGS = {"hi", "hello", "hey", "start", "menu"}
CART_WORDS = {"cart", "basket"}
CLEAR_WORDS = {"clear", "cancel"}
CHECKOUT_WORDS = {"checkout", "confirm", "order"}
STATUS_WORDS = {"status"}

MAX_QUANTITY = 50

ADD_PATTERN = re.compile(r"^add\s+(?P<what>.+?)(?:\s+x?(?P<qty>\d+))?$")
REMOVE_PATTERN = re.compile(r"^remove\s+(?P<line>\d+)$")

HELP_TEXT = (
    "I can help you order fresh juices.\n"
    "- *menu* to see our categories\n"
    "- a number to pick from the last list\n"
    "- *add <number or name> [qty]* to add to your cart\n"
    "- *cart* to review, *remove <line>* to drop a line\n"
    "- *checkout* to place your order, *clear* to start over\n"
    "- *status* to check your latest order"
)


def _money(amount: float) -> str:
    return f"{amount:.2f}"


class ChatBot:
    """Maps one inbound text to one reply, reading and updating the store."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def handle(self, sender: str, text: str, customer_name: str | None = None) -> str:
        session = await chat_sessions.get_or_create_session(self.db_path, sender)
        command = " ".join(text.lower().split())
        logger.debug("Session %s in state %s got %r", session["id"], session["state"], command)

        if command in GREETINGS:
            return await self.show_menu(session)
        if command in CART_WORDS:
            return await self.show_cart(session)
        if command in CLEAR_WORDS:
            return await self.clear_cart(session)
        if command in CHECKOUT_WORDS:
            return await self.checkout(session, customer_name)
        if command in STATUS_WORDS:
            return await self.order_status(session)

        match = REMOVE_PATTERN.match(command)
        if match:
            return await self.remove_line(session, int(match.group("line")))

        match = ADD_PATTERN.match(command)
        if match:
            quantity = int(match.group("qty")) if match.group("qty") else 1
            return await self.add_to_cart(session, match.group("what"), quantity)

        if command.isdigit():
            return await self.pick_number(session, int(command))

        return HELP_TEXT

    # -- Browsing --

    async def show_menu(self, session: dict) -> str:
        categories = await catalog.list_categories(self.db_path)
        if not categories:
            await chat_sessions.save_state(self.db_path, session["id"], "idle")
            return "Our menu is being updated. Please try again later."

        lines = ["Welcome to JuiceBot! Pick a category:"]
        lines += [f"{i}. {c['name']}" for i, c in enumerate(categories, start=1)]
        await chat_sessions.save_state(
            self.db_path,
            session["id"],
            "menu",
            {"category_ids": [c["id"] for c in categories]},
        )
        return "\n".join(lines)

    async def show_category(self, session: dict, category_id: int) -> str:
        category = await catalog.get_category(self.db_path, category_id)
        if category is None or not category["is_active"]:
            return await self.show_menu(session)

        products = await catalog.list_products(
            self.db_path, category_id=category_id, available_only=True, limit=100
        )
        if not products:
            return f"Nothing available in {category['name']} right now. Send *menu* to pick another category."

        lines = [f"*{category['name']}*"]
        for i, p in enumerate(products, start=1):
            lines.append(f"{i}. {p['name']} - {_money(p['price'])}")
            if p["ingredients"]:
                lines.append(f"   ({', '.join(p['ingredients'])})")
        lines.append("Send a number to add it to your cart, or *add <number> <qty>*.")
        await chat_sessions.save_state(
            self.db_path,
            session["id"],
            "category",
            {"category_id": category_id, "product_ids": [p["id"] for p in products]},
        )
        return "\n".join(lines)

    async def pick_number(self, session: dict, number: int) -> str:
        state, context = session["state"], session["context"]
        if state == "menu":
            category_ids = context.get("category_ids", [])
            if not 1 <= number <= len(category_ids):
                return f"Please pick a number between 1 and {len(category_ids)}."
            return await self.show_category(session, category_ids[number - 1])
        if state == "category":
            return await self.add_to_cart(session, str(number), 1)
        return "Send *menu* to see our categories first."

    # -- Cart --

    async def _resolve_product(self, session: dict, what: str) -> dict | None:
        if what.isdigit():
            product_ids = session["context"].get("product_ids", []) if session["state"] == "category" else []
            index = int(what)
            if not 1 <= index <= len(product_ids):
                return None
            product = await catalog.get_product(self.db_path, product_ids[index - 1])
            return product if product and product["is_available"] else None
        return await catalog.find_product_by_name(self.db_path, what)

    async def add_to_cart(self, session: dict, what: str, quantity: int) -> str:
        if not 1 <= quantity <= MAX_QUANTITY:
            return f"Quantity must be between 1 and {MAX_QUANTITY}."
        product = await self._resolve_product(session, what)
        if product is None:
            return f"Sorry, I couldn't find \"{what}\". Send *menu* to browse."

        items = await chat_sessions.get_items(self.db_path, session["id"])
        in_cart = sum(item["quantity"] for item in items if item["product_id"] == product["id"])
        if in_cart + quantity > MAX_QUANTITY:
            return (
                f"You already have {in_cart} x {product['name']} in your cart. "
                f"The limit is {MAX_QUANTITY} per product."
            )

        await chat_sessions.add_item(self.db_path, session["id"], product["id"], quantity)
        items = await chat_sessions.get_items(self.db_path, session["id"])
        total = sum(item["line_total"] for item in items)
        return (
            f"Added {quantity} x {product['name']} to your cart.\n"
            f"Cart total: {_money(total)}. Send *checkout* to order or keep adding."
        )

    async def show_cart(self, session: dict) -> str:
        items = await chat_sessions.get_items(self.db_path, session["id"])
        if not items:
            return "Your cart is empty. Send *menu* to start."
        lines = ["Your cart:"]
        for i, item in enumerate(items, start=1):
            lines.append(
                f"{i}. {item['quantity']} x {item['product_name']} = {_money(item['line_total'])}"
            )
        lines.append(f"Total: {_money(sum(item['line_total'] for item in items))}")
        lines.append("Send *checkout* to order, *remove <line>* or *clear*.")
        return "\n".join(lines)

    async def remove_line(self, session: dict, line: int) -> str:
        items = await chat_sessions.get_items(self.db_path, session["id"])
        if not 1 <= line <= len(items):
            return "There is no such line in your cart. Send *cart* to review it."
        item = items[line - 1]
        await chat_sessions.remove_item(self.db_path, session["id"], item["id"])
        return f"Removed {item['product_name']} from your cart."

    async def clear_cart(self, session: dict) -> str:
        await chat_sessions.clear_items(self.db_path, session["id"])
        await chat_sessions.save_state(self.db_path, session["id"], "idle")
        return "Your cart is now empty. Send *menu* whenever you're ready."

    # -- Orders --

    async def checkout(self, session: dict, customer_name: str | None = None) -> str:
        if not await chat_sessions.get_items(self.db_path, session["id"]):
            return "Your cart is empty. Send *menu* to start."
        try:
            order_id = await chat_sessions.checkout(
                self.db_path, session["id"], session["phone"], customer_name
            )
        except OrderValidationError as e:
            logger.info("Checkout rejected for %s: %s", session["phone"], e)
            return "Some items in your cart are no longer available. Send *cart* to review it."

        await chat_sessions.save_state(self.db_path, session["id"], "idle")
        order = await orders.get_order(self.db_path, order_id)
        logger.info("Chat order %s placed by %s", order_id, session["phone"])
        return (
            f"Thank you! Your order #{order_id} has been placed.\n"
            f"Total: {_money(order['total'])}. Send *status* to check on it."
        )

    async def order_status(self, session: dict) -> str:
        order = await orders.get_latest_order(self.db_path, session["phone"])
        if order is None:
            return "You haven't placed any orders yet. Send *menu* to start."
        return f"Order #{order['id']} is *{order['status']}* (total {_money(order['total'])})."
