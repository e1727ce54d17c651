from aiogram.fsm.state import State, StatesGroup


class Register(StatesGroup):
    waiting_name = State()
    waiting_email = State()
    waiting_password = State()


class Checkout(StatesGroup):
    waiting_street = State()
    waiting_city = State()
    waiting_state = State()
    waiting_zip = State()
    waiting_country = State()
    waiting_confirm = State()
