from typing import Literal, Optional, Sequence, TypeAlias

from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from pad_prober.progress import SingleSlotQueue, StateSnapshot


COLORS = {
    "current_byte": "bold yellow on black",
    "ciphertext": {
        "unsolved": "dark_red",
        "solved": "bright_red",
    },
    "forged": {
        "unsolved": "cyan",
        "solved": "turquoise2",
    },
    "plaintext": {
        "unsolved": "green",
        "solved": "spring_green2",
    },
}

BlockType: TypeAlias = Literal["ciphertext", "forged", "plaintext"]
BlockState: TypeAlias = Literal["unsolved", "solved", "current"]


def _styled(text: str, style: str) -> str:
    return f"[{style}]{text}[/{style}]"


def block_to_string(
    block: Sequence[Optional[int]],
    block_type: BlockType,
    block_state: BlockState,
    current_byte_index: int = -1,
) -> str:
    """Convert a block to a hex string and apply coloring."""
    normalized_block = ["??" if b is None else f"{b:02x}" for b in block]

    if block_state == "current":
        hex_bytes = []
        for i, b in enumerate(normalized_block):
            if i < current_byte_index:
                hex_bytes.append(_styled(b, COLORS[block_type]["unsolved"]))
            elif i > current_byte_index:
                hex_bytes.append(_styled(b, COLORS[block_type]["solved"]))
            else:
                hex_bytes.append(_styled(b, COLORS["current_byte"]))
        return " ".join(hex_bytes)
    if block_state in ("solved", "unsolved"):
        style = COLORS[block_type][block_state]
        return " ".join(_styled(b, style) for b in normalized_block)
    raise ValueError(f"Invalid block state: {block_state}")


def printable(block: Sequence[Optional[int]]) -> str:
    """Render recovered bytes as text, dotting out the unprintable ones."""
    return "".join(
        "?" if b is None else (chr(b) if 0x20 <= b < 0x7F else ".")
        for b in block
    )


def render(state: Optional[StateSnapshot]):
    """Render the solver state snapshot."""
    if state is None:
        return Panel("Waiting for first update…", title="Padding Oracle", border_style="dim")

    if len(state.ciphertext) != len(state.forged) or len(state.ciphertext) != len(state.plaintext):
        raise ValueError("Ciphertext, forged, and plaintext must have the same number of blocks")

    title = (
        f"Block {state.block_index} / {state.block_count}  |  Byte {state.byte_index}  |  "
        f"pad {state.pad_length}  |  {state.queries} queries"
    )
    if state.complete:
        title = f"Done  |  {state.block_count} blocks  |  {state.queries} queries"

    ui_table = Table(title=title)
    ui_table.add_column("Block", justify="right")
    ui_table.add_column("Ciphertext Cₙ")
    ui_table.add_column("Forged Cₙ₋₁′")
    ui_table.add_column("Plaintext Pₙ")
    ui_table.add_column("Text")

    for block_idx, ciphertext_block in enumerate(state.ciphertext):
        if block_idx == 0:
            ui_table.add_row("IV", block_to_string(ciphertext_block, "ciphertext", "solved"), "", "", "")
            continue

        plaintext_block = state.plaintext[block_idx]
        solved = all(b is not None for b in plaintext_block)
        if block_idx == state.block_index and not state.complete and not solved:
            forged_string = block_to_string(state.forged[block_idx], "forged", "current", state.byte_index)
            plaintext_string = block_to_string(plaintext_block, "plaintext", "current", state.byte_index)
        else:
            block_state = "solved" if solved else "unsolved"
            forged_string = block_to_string(state.forged[block_idx], "forged", block_state)
            plaintext_string = block_to_string(plaintext_block, "plaintext", block_state)

        ui_table.add_row(
            str(block_idx),
            block_to_string(ciphertext_block, "ciphertext", "solved"),
            forged_string,
            plaintext_string,
            printable(plaintext_block),
        )

    return ui_table


def ui_loop(state_queue: SingleSlotQueue[StateSnapshot]) -> None:
    """Redraw on every snapshot until the queue closes."""
    with Live(render(None), refresh_per_second=30, screen=False) as live:
        while True:
            state = state_queue.get()
            if state is None:
                break
            live.update(render(state))
