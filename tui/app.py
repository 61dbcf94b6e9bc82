"""Planning Poker TUI - terminal client for a shared estimation room."""

from typing import Any

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Static,
)

from pokerroom import config
from pokerroom.http_store import HttpRecordStore
from pokerroom.identity import IdentityStore, InvalidDisplayNameError
from pokerroom.models import DECK, Phase, RoomState
from pokerroom.telemetry import instrument_httpx, setup_telemetry

from .api import RoomClient, available_actions, build_seats

CONTROL_BUTTONS = {
    "start_voting": "#start-btn",
    "reveal": "#reveal-btn",
    "revote": "#revote-btn",
    "next_round": "#next-btn",
    "add_simulated": "#add-ai-btn",
}


class NameScreen(ModalScreen[str]):
    """Asks for the display name before joining."""

    def __init__(self, default: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.default = default

    def compose(self) -> ComposeResult:
        with Vertical(id="name-dialog"):
            yield Label("What should the table call you?", classes="dialog-title")
            yield Input(
                value=self.default,
                placeholder=f"{config.MIN_DISPLAY_NAME}-{config.MAX_DISPLAY_NAME} characters",
                id="name-input",
            )
            yield Label("", id="name-error")
            yield Button("Join", id="join-btn", variant="primary")

    @on(Button.Pressed, "#join-btn")
    @on(Input.Submitted, "#name-input")
    def handle_submit(self) -> None:
        name = self.query_one("#name-input", Input).value.strip()
        if not config.MIN_DISPLAY_NAME <= len(name) <= config.MAX_DISPLAY_NAME:
            self.query_one("#name-error", Label).update(
                f"Name must be {config.MIN_DISPLAY_NAME}-{config.MAX_DISPLAY_NAME} characters"
            )
            return
        self.dismiss(name)


class PlanningPokerTUI(App):
    """Planning Poker Terminal User Interface."""

    CSS = """
    #main-container {
        layout: horizontal;
    }

    #sidebar {
        width: 36;
        background: $surface;
        border-right: solid $primary;
        padding: 0 1;
    }

    #room-header {
        height: 3;
        padding: 1;
        background: $primary;
        color: $text;
        text-align: center;
    }

    #sidebar Button {
        width: 100%;
        margin: 1 0 0 0;
    }

    #table-area {
        width: 1fr;
        padding: 1;
    }

    #topic-area {
        height: auto;
        padding: 1;
        border: solid $primary;
    }

    #topic-display {
        text-style: bold;
    }

    #seats {
        height: 1fr;
        margin: 1 0;
    }

    #summary {
        height: auto;
        color: $success;
    }

    #cards {
        height: auto;
        padding: 1;
        background: $surface;
        border-top: solid $primary;
    }

    .card-btn {
        min-width: 6;
        margin: 0 1 0 0;
    }

    .card-btn.selected {
        background: $success;
    }

    #status-bar {
        height: 1;
        background: $primary;
        color: $text;
        padding: 0 1;
    }

    NameScreen {
        align: center middle;
    }

    #name-dialog {
        width: 50;
        height: auto;
        padding: 1 2;
        border: thick $primary;
        background: $surface;
    }

    .dialog-title {
        text-style: bold;
        margin-bottom: 1;
    }

    #name-error {
        color: $error;
    }
    """

    BINDINGS = [
        Binding("ctrl+s", "start_voting", "Start"),
        Binding("ctrl+r", "reveal", "Reveal"),
        Binding("ctrl+a", "add_simulated", "Add AI"),
        Binding("ctrl+l", "invite", "Invite"),
        Binding("ctrl+n", "new_game", "New game"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    is_connected: reactive[bool] = reactive(False)

    def __init__(self, url: str = config.APP_URL, store_url: str = config.STORE_URL) -> None:
        super().__init__()
        self.store_url = store_url
        self.identity = IdentityStore()
        self.client = self._build_client(url)
        self._remove_listener = None

    def _build_client(self, url: str) -> RoomClient:
        return RoomClient(url, store=HttpRecordStore(self.store_url), identity=self.identity)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Container(id="main-container"):
            with Vertical(id="sidebar"):
                yield Static("🃏 Planning Poker", id="room-header")
                yield Label("", id="room-label")
                yield Button("Start voting", id="start-btn", variant="primary")
                yield Button("Reveal", id="reveal-btn", variant="success")
                yield Button("Re-vote", id="revote-btn")
                yield Button("Next round", id="next-btn")
                yield Button("+ Add AI players", id="add-ai-btn")
                yield Button("Copy invite link", id="invite-btn")
                yield Button("New game", id="new-game-btn", variant="warning")
            with Vertical(id="table-area"):
                with Vertical(id="topic-area"):
                    yield Static("No topic yet", id="topic-display")
                    yield Input(placeholder="Topic title", id="topic-title")
                    yield Input(placeholder="Description (optional)", id="topic-desc")
                    yield Button("Save topic", id="save-topic-btn")
                yield DataTable(id="seats", cursor_type="none")
                yield Static("", id="summary")
                with Horizontal(id="cards"):
                    for card in DECK:
                        yield Button(str(card), name=card.to_wire(), classes="card-btn")
        yield Static("Connecting...", id="status-bar")
        yield Footer()

    async def on_mount(self) -> None:
        """Ask for a name unless one was committed before, then join."""
        table = self.query_one("#seats", DataTable)
        table.add_columns("Player", "", "Vote", "Reasoning")

        name = self.client.display_name
        if name:
            await self.join_room(name)
        else:
            self.push_screen(NameScreen(), self.handle_name_chosen)

    async def on_unmount(self) -> None:
        """Cleanup when app unmounts."""
        if self._remove_listener is not None:
            self._remove_listener()
        await self.client.close()

    async def handle_name_chosen(self, name: str | None) -> None:
        if name:
            await self.join_room(name)

    async def join_room(self, name: str) -> None:
        """Join the client's room under ``name``."""
        try:
            loaded = await self.client.join(name)
        except InvalidDisplayNameError as e:
            self.notify(str(e), severity="error")
            self.push_screen(NameScreen(name), self.handle_name_chosen)
            return

        self.query_one("#room-label", Label).update(f"Room {self.client.room_id}")
        if not loaded:
            self.query_one("#status-bar", Static).update(
                f"Record service unreachable at {self.store_url}"
            )
            self.notify("Could not load the room", severity="error")
            return

        self.is_connected = True
        self._remove_listener = self.client.engine.add_listener(self.render_room)
        self.render_room(self.client.engine.state)

    def render_room(self, state: RoomState | None) -> None:
        """Redraw everything that depends on room state."""
        if state is None:
            return

        topic = state.topic
        if topic.is_blank:
            topic_text = "No topic yet"
        else:
            topic_text = topic.title
            if topic.description:
                topic_text += f"\n{topic.description}"
        self.query_one("#topic-display", Static).update(topic_text)

        editable = state.topic_editable
        for selector in ("#topic-title", "#topic-desc", "#save-topic-btn"):
            self.query_one(selector).display = editable

        table = self.query_one("#seats", DataTable)
        table.clear()
        for seat in build_seats(state, self.client.engine.local_participant.id):
            label = f"{seat.name} (you)" if seat.is_local else seat.name
            table.add_row(label, "🤖" if seat.is_simulated else "", seat.status, seat.rationale or "")

        actions = available_actions(state)
        for action, selector in CONTROL_BUTTONS.items():
            self.query_one(selector, Button).disabled = action not in actions

        mine = self.client.engine.my_estimate
        for button in self.query(".card-btn").results(Button):
            button.disabled = "vote" not in actions
            button.set_class(mine is not None and button.name == mine.value.to_wire(), "selected")

        summary = self.client.summary()
        summary_widget = self.query_one("#summary", Static)
        if summary is None or summary.count == 0:
            summary_widget.update("")
        else:
            summary_widget.update(
                f"Average {summary.average:.1f} (closest card {summary.nearest_card}) · "
                f"consensus {summary.consensus} at {summary.agreement}%"
                + (f" · {summary.unknown_count} unsure" if summary.unknown_count else "")
            )

        voted = len(state.participants) - len(state.pending_participants)
        self.query_one("#status-bar", Static).update(
            f"{state.phase.value.upper()} · {voted}/{len(state.participants)} voted"
        )

    @on(Button.Pressed, "#save-topic-btn")
    @on(Input.Submitted, "#topic-title")
    @on(Input.Submitted, "#topic-desc")
    async def handle_save_topic(self) -> None:
        """Save the topic; only possible before voting starts."""
        engine = self.client.engine
        if engine is None or engine.state is None or not engine.state.topic_editable:
            return
        title = self.query_one("#topic-title", Input).value.strip()
        description = self.query_one("#topic-desc", Input).value.strip()
        await engine.set_topic(title, description)

    @on(Button.Pressed, ".card-btn")
    async def handle_card(self, event: Button.Pressed) -> None:
        """Cast the local vote."""
        if self.client.engine is not None:
            await self.client.engine.vote(event.button.name)

    @on(Button.Pressed, "#start-btn")
    async def handle_start(self) -> None:
        await self.action_start_voting()

    @on(Button.Pressed, "#reveal-btn")
    async def handle_reveal(self) -> None:
        await self.action_reveal()

    @on(Button.Pressed, "#revote-btn")
    async def handle_revote(self) -> None:
        if self.client.engine is not None:
            await self.client.engine.revote()

    @on(Button.Pressed, "#next-btn")
    async def handle_next_round(self) -> None:
        if self.client.engine is not None:
            self.query_one("#topic-title", Input).value = ""
            self.query_one("#topic-desc", Input).value = ""
            await self.client.engine.next_round()

    @on(Button.Pressed, "#add-ai-btn")
    async def handle_add_ai(self) -> None:
        await self.action_add_simulated()

    @on(Button.Pressed, "#invite-btn")
    def handle_invite(self) -> None:
        self.action_invite()

    @on(Button.Pressed, "#new-game-btn")
    def handle_new_game(self) -> None:
        self.action_new_game()

    async def action_start_voting(self) -> None:
        engine = self.client.engine
        if engine is not None and engine.state is not None and engine.state.phase is Phase.SETUP:
            await engine.start_voting()

    async def action_reveal(self) -> None:
        engine = self.client.engine
        if engine is None or engine.state is None or engine.state.phase is not Phase.VOTING:
            return
        if not engine.all_voted:
            self.notify("Waiting for everyone to vote", severity="warning")
            return
        await engine.reveal()

    async def action_add_simulated(self) -> None:
        if self.client.engine is None:
            return
        added = await self.client.engine.add_simulated_participants()
        if added:
            self.notify(f"Joined: {', '.join(p.name for p in added)}", severity="information")
        else:
            self.notify("All AI players are already seated", severity="warning")

    def action_invite(self) -> None:
        link = self.client.invite_link
        self.copy_to_clipboard(link)
        self.notify(f"Invite link copied: {link}", severity="information")

    @work(exclusive=True)
    async def action_new_game(self) -> None:
        """Leave this room and open a fresh one."""
        name = self.client.display_name
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        url = self.client.new_game_url
        await self.client.close()

        self.is_connected = False
        self.client = self._build_client(url)
        if name:
            await self.join_room(name)
        else:
            self.push_screen(NameScreen(), self.handle_name_chosen)
        self.notify(f"New room {self.client.room_id}", severity="information")


def main() -> None:
    """Run the TUI app."""
    import argparse

    parser = argparse.ArgumentParser(description="Planning Poker TUI")
    parser.add_argument(
        "--url",
        default=config.APP_URL,
        help="Room URL; a ?room= id is assigned when missing",
    )
    parser.add_argument(
        "--store-url",
        default=config.STORE_URL,
        help=f"Record service base URL (default: {config.STORE_URL})",
    )
    args = parser.parse_args()

    if setup_telemetry():
        instrument_httpx()

    app = PlanningPokerTUI(url=args.url, store_url=args.store_url)
    app.run()


if __name__ == "__main__":
    main()
