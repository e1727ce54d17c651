import logging
from datetime import datetime
from html import escape

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from shopfront.bot.keyboards import confirm_kb, main_kb
from shopfront.bot.states import Checkout, Register
from shopfront.context import ShopContext
from shopfront.models import Address
from shopfront.services.catalog import paginate
from shopfront.services.pricing import order_totals
from shopfront.services.receipt_pdf import generate_receipt_pdf
from shopfront.utils.formatters import (
    address_list,
    cart_text,
    money,
    order_line,
    order_text,
    product_card,
    product_line,
    reviews_text,
    wishlist_text,
)
from shopfront.utils.jwt import token_expires_at
from shopfront.utils.validators import parse_quantity, require_email, require_name, require_password

logger = logging.getLogger(__name__)

router = Router()

PAGE_SIZE = 10


def _args(command: CommandObject) -> list[str]:
    return (command.args or "").split()


def _page_arg(raw: str | None) -> int:
    try:
        return max(1, int(raw)) if raw else 1
    except ValueError:
        return 1


@router.message(Command("start"))
async def cmd_start(message: Message, shop: ShopContext):
    who = escape(shop.auth.user.name) if shop.auth.user else "guest"
    await message.answer(
        f"👋 Welcome, {who}!\n"
        "Browse: /products, /featured, /categories\n"
        "Cart: /cart, Wishlist: /wishlist\n"
        "Help: /help",
        reply_markup=main_kb(),
    )


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=main_kb())


@router.message(Command("help"))
async def cmd_help(message: Message):
    text = (
        "<b>Commands</b>\n\n"
        "<b>Catalog</b>\n"
        "/products [CATEGORY] [PAGE]: product list\n"
        "/featured: featured products\n"
        "/search TEXT: search products\n"
        "/categories: categories\n"
        "/product ID: product card\n"
        "/reviews ID [PAGE]: product reviews\n\n"
        "<b>Cart</b>\n"
        "/add ID [QTY]: add to cart\n"
        "/cart: show cart\n"
        "/qty ID N: set quantity (0 removes)\n"
        "/remove ID: remove line\n"
        "/clear: empty the cart\n"
        "/sync: reload the cart from the server\n\n"
        "<b>Wishlist</b>\n"
        "/wish ID, /unwish ID, /wishlist [PAGE], /wishlist_clear\n\n"
        "<b>Account</b>\n"
        "/login EMAIL PASSWORD, /register, /logout, /me\n"
        "/addresses: saved shipping addresses\n\n"
        "<b>Orders</b>\n"
        "/checkout: place an order\n"
        "/orders, /order ID, /cancel_order ID [REASON], /receipt ID\n\n"
        "/cancel: abort current input, /ping: check"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    await message.answer("pong ✅")


# ---------------- catalog ----------------

@router.message(Command("products"))
async def cmd_products(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    category = None
    page = 1
    if args and args[-1].isdigit():
        page = _page_arg(args.pop())
    if args:
        category = " ".join(args)

    res = await shop.catalog.list_products(page=page, limit=PAGE_SIZE, category=category)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return

    products, pagination = res.data
    if not products:
        await message.answer("No products found.")
        return
    lines = [f"<b>Products</b> (page {pagination.current_page}/{pagination.total_pages})"]
    lines.extend(product_line(p) for p in products)
    if pagination.has_next_page:
        nxt = f"{category} " if category else ""
        lines.append(f"\nNext page: /products {nxt}{pagination.current_page + 1}")
    await message.answer("\n".join(lines))


@router.message(Command("featured"))
async def cmd_featured(message: Message, shop: ShopContext):
    res = await shop.catalog.featured()
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    if not res.data:
        await message.answer("No featured products right now.")
        return
    await message.answer("\n".join(["<b>⭐ Featured</b>", *(product_line(p) for p in res.data)]))


@router.message(Command("search"))
async def cmd_search(message: Message, command: CommandObject, shop: ShopContext):
    term = (command.args or "").strip()
    if not term:
        await message.answer("Format: /search TEXT")
        return
    res = await shop.catalog.list_products(page=1, limit=PAGE_SIZE, search=term)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    products, _ = res.data
    if not products:
        await message.answer(f"Nothing found for «{escape(term)}».")
        return
    await message.answer("\n".join([f"<b>Search: {escape(term)}</b>", *(product_line(p) for p in products)]))


@router.message(Command("categories"))
async def cmd_categories(message: Message, shop: ShopContext):
    res = await shop.catalog.categories()
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    if not res.data:
        await message.answer("No categories yet.")
        return
    lines = ["<b>Categories</b>"]
    lines.extend(f"• {escape(name)}  →  /products {escape(name)}" for name in res.data)
    await message.answer("\n".join(lines))


@router.message(Command("product"))
async def cmd_product(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 1:
        await message.answer("Format: /product ID")
        return
    res = await shop.catalog.get_product(args[0], shop.token)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    p = res.data
    hearted = "♥ in wishlist" if shop.wishlist.contains(p.id) else f"/wish {p.id}"
    text = f"{product_card(p)}\n\n/add {p.id}  |  {hearted}"

    rev = await shop.catalog.reviews(p.id, limit=3)
    if rev.success:
        reviews, stats, _ = rev.data
        text += f"\n\n{reviews_text(reviews, stats)}"
        if stats.total_reviews > len(reviews):
            text += f"\nAll reviews: /reviews {p.id}"
    else:
        logger.info("Reviews unavailable for %s: %s", p.id, rev.message)
    await message.answer(text)


@router.message(Command("reviews"))
async def cmd_reviews(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) not in (1, 2):
        await message.answer("Format: /reviews ID [PAGE]")
        return
    page = _page_arg(args[1] if len(args) == 2 else None)
    res = await shop.catalog.reviews(args[0], page=page, limit=PAGE_SIZE)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    reviews, stats, pagination = res.data
    text = reviews_text(reviews, stats, title="Reviews")
    if pagination.has_next_page:
        text += f"\n\nNext page: /reviews {args[0]} {pagination.current_page + 1}"
    await message.answer(text)


# ---------------- cart ----------------

@router.message(Command("add"))
async def cmd_add(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) not in (1, 2):
        await message.answer("Format: /add ID [QTY]")
        return

    qty = 1
    if len(args) == 2:
        try:
            qty = parse_quantity(args[1])
        except ValueError:
            await message.answer("QTY must be a whole number, e.g. 2")
            return

    found = await shop.catalog.get_product(args[0], shop.token)
    if not found.success:
        await message.answer(f"❌ {found.message}")
        return
    product = found.data

    res = await shop.cart.add_item_with_quantity(product, qty)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    await message.answer(
        f"✅ Added: {escape(product.name)} × {qty}\n"
        f"Cart: {shop.cart.item_count} items, {money(shop.cart.total)}"
    )


@router.message(Command("cart"))
async def cmd_cart(message: Message, shop: ShopContext):
    text = cart_text(shop.cart.state)
    if shop.cart.items:
        preview = order_totals(shop.cart.total)
        text += (
            f"\nShipping: {money(preview['shipping'])}, tax: {money(preview['tax'])}"
            f"\nEstimated total: {money(preview['total'])}\n\n/checkout"
        )
    if not shop.token:
        text += "\n\n<i>Offline cart. /login to keep it on your account.</i>"
    await message.answer(text)


@router.message(Command("qty"))
async def cmd_qty(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 2:
        await message.answer("Format: /qty ID N")
        return
    try:
        qty = parse_quantity(args[1])
    except ValueError:
        await message.answer("N must be a whole number")
        return

    res = await shop.cart.update_quantity(args[0], qty)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    await message.answer(cart_text(shop.cart.state))


@router.message(Command("remove"))
async def cmd_remove(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 1:
        await message.answer("Format: /remove ID")
        return
    res = await shop.cart.remove_item(args[0])
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    await message.answer(f"✅ Removed.\n\n{cart_text(shop.cart.state)}")


@router.message(Command("clear"))
async def cmd_clear(message: Message, shop: ShopContext):
    res = await shop.cart.clear_cart()
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    await message.answer("🧺 Cart cleared.")


@router.message(Command("sync"))
async def cmd_sync(message: Message, shop: ShopContext):
    if not shop.token:
        await message.answer("Offline cart, nothing to sync. /login first.")
        return
    res = await shop.cart.sync_with_server()
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    await message.answer(cart_text(shop.cart.state))


# ---------------- wishlist ----------------

@router.message(Command("wish"))
async def cmd_wish(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 1:
        await message.answer("Format: /wish ID")
        return
    found = await shop.catalog.get_product(args[0], shop.token)
    if not found.success:
        await message.answer(f"❌ {found.message}")
        return
    if shop.wishlist.add(found.data):
        await message.answer(f"♥ Added to wishlist: {escape(found.data.name)}")
    else:
        await message.answer("Already in wishlist.")


@router.message(Command("unwish"))
async def cmd_unwish(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 1:
        await message.answer("Format: /unwish ID")
        return
    if shop.wishlist.remove(args[0]):
        await message.answer("✅ Removed from wishlist.")
    else:
        await message.answer("Not in wishlist.")


@router.message(Command("wishlist"))
async def cmd_wishlist(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    page_items, pagination = paginate(shop.wishlist.items, _page_arg(args[0] if args else None), PAGE_SIZE)
    text = wishlist_text(page_items)
    if pagination.total_pages > 1:
        text += f"\n\nPage {pagination.current_page}/{pagination.total_pages}"
        if pagination.has_next_page:
            text += f", next: /wishlist {pagination.current_page + 1}"
    await message.answer(text)


@router.message(Command("wishlist_clear"))
async def cmd_wishlist_clear(message: Message, shop: ShopContext):
    shop.wishlist.clear()
    await message.answer("♡ Wishlist cleared.")


# ---------------- account ----------------

@router.message(Command("login"))
async def cmd_login(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 2:
        await message.answer("Format: /login EMAIL PASSWORD")
        return

    res = await shop.auth.login(args[0], args[1])
    try:
        await message.delete()
    except Exception as e:
        logger.debug("Could not delete login message: %s", e)

    if not res.success:
        await message.answer(f"❌ {res.message}")
        return

    await shop.cart.sync_with_server()
    await message.answer(
        f"✅ Signed in as {escape(res.data.name)}.\n{cart_text(shop.cart.state)}",
        reply_markup=main_kb(),
    )


@router.message(Command("register"))
async def cmd_register(message: Message, state: FSMContext):
    await state.clear()
    await state.set_state(Register.waiting_name)
    await message.answer("1/3) Your name?\nCancel: /cancel", reply_markup=ReplyKeyboardRemove())


@router.message(Register.waiting_name)
async def register_name(message: Message, state: FSMContext):
    raw = (message.text or "").strip()
    if raw.startswith("/"):
        await message.answer("Type your name as text. Cancel: /cancel")
        return
    try:
        name = require_name(raw)
    except ValueError as e:
        await message.answer(f"❌ {e}. Cancel: /cancel")
        return
    await state.update_data(name=name)
    await state.set_state(Register.waiting_email)
    await message.answer("2/3) Email?")


@router.message(Register.waiting_email)
async def register_email(message: Message, state: FSMContext):
    try:
        email = require_email(message.text or "")
    except ValueError as e:
        await message.answer(f"❌ {e}. Cancel: /cancel")
        return
    await state.update_data(email=email)
    await state.set_state(Register.waiting_password)
    await message.answer("3/3) Password (at least 6 characters)?")


@router.message(Register.waiting_password)
async def register_password(message: Message, state: FSMContext, shop: ShopContext):
    try:
        password = require_password(message.text or "")
    except ValueError as e:
        await message.answer(f"❌ {e}. Cancel: /cancel")
        return

    data = await state.get_data()
    try:
        await message.delete()
    except Exception as e:
        logger.debug("Could not delete password message: %s", e)

    try:
        res = await shop.auth.register(str(data.get("name", "")), str(data.get("email", "")), password)
    finally:
        await state.clear()

    if not res.success:
        await message.answer(f"❌ {res.message}", reply_markup=main_kb())
        return
    await shop.cart.sync_with_server()
    await message.answer(f"✅ Account created. Welcome, {escape(res.data.name)}!", reply_markup=main_kb())


@router.message(Command("logout"))
async def cmd_logout(message: Message, shop: ShopContext):
    if not shop.token:
        await message.answer("You are not signed in.")
        return
    await shop.auth.logout_remote()
    await message.answer("👋 Signed out. Cart is now offline.")


@router.message(Command("me"))
async def cmd_me(message: Message, shop: ShopContext):
    user = shop.auth.user
    if not shop.auth.is_authenticated or user is None:
        await message.answer("Guest. /login or /register")
        return
    lines = [
        f"<b>{escape(user.name)}</b>",
        f"Email: {escape(user.email)}",
        f"Role: {user.role}",
    ]
    exp = token_expires_at(shop.token)
    if exp:
        lines.append(f"Session until: {datetime.fromtimestamp(exp).strftime('%Y-%m-%d %H:%M')}")
    lines.append(f"Cart: {shop.cart.item_count} items, wishlist: {shop.wishlist.count}")
    await message.answer("\n".join(lines))


@router.message(Command("addresses"))
async def cmd_addresses(message: Message, shop: ShopContext):
    res = await shop.account.addresses()
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    if not res.data:
        await message.answer("No saved addresses yet. The address you type at /checkout is saved here.")
        return
    await message.answer(f"<b>📍 Saved addresses</b>\n{address_list(res.data)}")


# ---------------- checkout ----------------

@router.message(Command("checkout"))
async def cmd_checkout(message: Message, state: FSMContext, shop: ShopContext):
    if not shop.token:
        await message.answer("Please /login first. Your offline cart stays here.")
        return
    if not shop.cart.items:
        await message.answer("🧺 Cart is empty")
        return
    await state.clear()

    saved = await shop.account.addresses()
    if not saved.success:
        logger.info("Saved addresses unavailable: %s", saved.message)
    addresses = saved.data if saved.success else []
    await state.update_data(saved=[a.to_dict() for a in addresses])
    await state.set_state(Checkout.waiting_street)

    if addresses:
        await message.answer(
            f"Shipping address.\n{address_list(addresses)}\n\n"
            "Send a number to use a saved address, or type a new street.\nCancel: /cancel",
            reply_markup=ReplyKeyboardRemove(),
        )
        return
    await message.answer("Shipping address.\n1/5) Street?\nCancel: /cancel", reply_markup=ReplyKeyboardRemove())


async def _checkout_step(message: Message, state: FSMContext, field: str, next_state, prompt: str) -> None:
    value = (message.text or "").strip()
    if not value or value.startswith("/"):
        await message.answer("Please type it as text. Cancel: /cancel")
        return
    await state.update_data(**{field: value})
    await state.set_state(next_state)
    await message.answer(prompt)


async def _ask_confirm(message: Message, state: FSMContext, shop: ShopContext) -> None:
    await state.set_state(Checkout.waiting_confirm)
    data = await state.get_data()
    preview = order_totals(shop.cart.total)
    await message.answer(
        f"{cart_text(shop.cart.state)}\n\n"
        f"Ship to: {escape(_address_from(data).one_line())}\n"
        f"Shipping: {money(preview['shipping'])}\n"
        f"Tax: {money(preview['tax'])}\n"
        f"<b>To pay (cash on delivery): {money(preview['total'])}</b>",
        reply_markup=confirm_kb(),
    )


def _address_from(data: dict) -> Address:
    return Address(
        street=str(data.get("street", "")),
        city=str(data.get("city", "")),
        state=str(data.get("state", "")),
        zip_code=str(data.get("zip_code", "")),
        country=str(data.get("country", "")),
    )


@router.message(Checkout.waiting_street)
async def checkout_street(message: Message, state: FSMContext, shop: ShopContext):
    value = (message.text or "").strip()
    saved = (await state.get_data()).get("saved") or []
    if saved and value.isdigit():
        pick = int(value)
        if not 1 <= pick <= len(saved):
            await message.answer(f"Send 1..{len(saved)} or type a new street. Cancel: /cancel")
            return
        address = Address.from_api(saved[pick - 1])
        await state.update_data(
            street=address.street,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
            from_saved=True,
        )
        await _ask_confirm(message, state, shop)
        return
    await _checkout_step(message, state, "street", Checkout.waiting_city, "2/5) City?")


@router.message(Checkout.waiting_city)
async def checkout_city(message: Message, state: FSMContext):
    await _checkout_step(message, state, "city", Checkout.waiting_state, "3/5) State / region?")


@router.message(Checkout.waiting_state)
async def checkout_state(message: Message, state: FSMContext):
    await _checkout_step(message, state, "state", Checkout.waiting_zip, "4/5) ZIP code?")


@router.message(Checkout.waiting_zip)
async def checkout_zip(message: Message, state: FSMContext):
    await _checkout_step(message, state, "zip_code", Checkout.waiting_country, "5/5) Country?")


@router.message(Checkout.waiting_country)
async def checkout_country(message: Message, state: FSMContext, shop: ShopContext):
    country = (message.text or "").strip()
    if not country or country.startswith("/"):
        await message.answer("Please type it as text. Cancel: /cancel")
        return
    await state.update_data(country=country)
    await _ask_confirm(message, state, shop)


@router.message(Checkout.waiting_confirm)
async def checkout_confirm(message: Message, state: FSMContext, shop: ShopContext):
    if not (message.text or "").startswith("✅"):
        await message.answer("Press «✅ Place order» or /cancel")
        return

    data = await state.get_data()
    address = _address_from(data)
    try:
        res = await shop.orders.checkout(address)
    finally:
        await state.clear()

    if not res.success:
        await message.answer(f"❌ {res.message}", reply_markup=main_kb())
        return
    order = res.data
    await message.answer(
        f"✅ Order placed: #{escape(order.order_number)}\n"
        f"Total: {money(order.total)}\n"
        f"Details: /order {order.id}  |  Receipt: /receipt {order.id}",
        reply_markup=main_kb(),
    )

    if not data.get("from_saved"):
        saved = await shop.account.add_address(address)
        if saved.success:
            await message.answer("📍 Address saved for next time: /addresses")
        else:
            logger.info("Address not saved: %s", saved.message)


# ---------------- orders ----------------

@router.message(Command("orders"))
async def cmd_orders(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    res = await shop.orders.list_orders(page=_page_arg(args[0] if args else None), limit=PAGE_SIZE)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    orders, pagination = res.data
    if not orders:
        await message.answer("No orders yet.")
        return
    lines = ["<b>Orders</b>"]
    lines.extend(order_line(o) for o in orders)
    if pagination.has_next_page:
        lines.append(f"\nNext page: /orders {pagination.current_page + 1}")
    await message.answer("\n".join(lines))


@router.message(Command("order"))
async def cmd_order(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 1:
        await message.answer("Format: /order ID")
        return
    res = await shop.orders.get_order(args[0])
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    order = res.data
    text = order_text(order)
    if order.can_be_cancelled:
        text += f"\n\n/cancel_order {order.id}"
    await message.answer(text)


@router.message(Command("cancel_order"))
async def cmd_cancel_order(message: Message, command: CommandObject, shop: ShopContext):
    parts = (command.args or "").split(maxsplit=1)
    if not parts:
        await message.answer("Format: /cancel_order ID [REASON]")
        return
    reason = parts[1].strip() if len(parts) > 1 else None
    res = await shop.orders.cancel_order(parts[0], reason)
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    await message.answer(f"✅ Order #{escape(res.data.order_number)} cancelled.")


@router.message(Command("receipt"))
async def cmd_receipt(message: Message, command: CommandObject, shop: ShopContext):
    args = _args(command)
    if len(args) != 1:
        await message.answer("Format: /receipt ID")
        return
    res = await shop.orders.get_order(args[0])
    if not res.success:
        await message.answer(f"❌ {res.message}")
        return
    try:
        pdf_path = generate_receipt_pdf(res.data)
        await message.answer_document(FSInputFile(pdf_path))
    except Exception as e:
        logger.exception("Receipt generation failed for %s", args[0])
        await message.answer(f"❌ Receipt error: {e}")
