from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label, TabbedContent, TabPane

import db.crud
from utils.logger import get_logger
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal, SimpleDialogModal

_logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6


class LoginScreen(BaseScreen):
    """
    Login and sign-up tabs. Dismisses once a session has been started
    on app.state.
    """

    def __init__(self):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with TabbedContent(id="super-tab-loginscr"):
            with TabPane("Login", id="tab-login"):
                with Vertical(id="div-login"):
                    yield Label("Email")
                    yield Input(placeholder="alice@example.com", id="input-login-email")
                    yield Label("Password")
                    yield Input(
                        placeholder="*********", password=True, id="input-login-pwd"
                    )
                    with Horizontal(id="div-login-btns"):
                        yield Button("Quit", id="btn-quit")
                        yield Button("Login", id="btn-login", variant="primary")

            with TabPane("Sign up", id="tab-signup"):
                with Vertical(id="div-reg"):
                    yield Label("Username")
                    yield Input(placeholder="Jane Doe", id="input-reg-name")
                    yield Label("Email")
                    yield Input(placeholder="user@example.com", id="input-reg-email")
                    yield Label("Password")
                    yield Input(
                        placeholder=f"at least {MIN_PASSWORD_LENGTH} characters",
                        password=True,
                        id="input-reg-pwd",
                    )
                    yield Label("Address")
                    yield Input(placeholder="1 Orchard Road", id="input-reg-address")
                    yield Label("Contact")
                    yield Input(placeholder="+65 9123 4567", id="input-reg-contact")
                    with Container(id="div-reg-btns"):
                        yield Button("Register", id="btn-reg", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()
        if event.key == "enter" and self.focused == self.query_one(
            "#input-reg-contact"
        ):
            self.handle_registration_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            return

        user = await db.crud.login(email, pwd)

        if user:
            self.app.state.start_session(user)
            _logger.info(f"user {user.uid} logged in as {user.role}")

            self.notify(f"Hello {user.username}!")
            self.app.post_message(UserLoginMessage())
            self.dismiss()
        else:
            self.notify("Invalid email or password.", severity="error")
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")

    @on(Button.Pressed, "#btn-reg")
    @work(exclusive=True)
    async def handle_registration_submit(self) -> None:
        name = self.query_one("#input-reg-name", Input).value.strip()
        email = self.query_one("#input-reg-email", Input).value.strip()
        pwd = self.query_one("#input-reg-pwd", Input).value.strip()
        address = self.query_one("#input-reg-address", Input).value.strip()
        contact = self.query_one("#input-reg-contact", Input).value.strip()

        if not name or not email or not pwd:
            self.notify("Username, email and password are required.", severity="error")
            return
        if "@" not in email:
            self.notify("Please enter a valid email address.", severity="error")
            return
        if len(pwd) < MIN_PASSWORD_LENGTH:
            self.notify(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                severity="error",
            )
            return

        if not await db.crud.email_available(email):
            self.notify("Email already taken.", severity="error")
            return

        uid = await db.crud.register_user(name, email, pwd, address, contact)
        _logger.info(f"registered user {uid}")
        await self.app.push_screen_wait(
            SimpleDialogModal(f"Registration successful. Welcome, {name}!")
        )

        self.get_child_by_type(TabbedContent).active = "tab-login"
        input_login_email = self.query_one("#input-login-email", Input)
        input_login_pwd = self.query_one("#input-login-pwd", Input)

        input_login_email.value = email
        input_login_pwd.value = pwd
        input_login_pwd.focus()

        self.notify("Registration successful.")

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
