import os
import logging
from typing import Any, List, Optional, Tuple
import gspread
from gspread.http_client import BackOffHTTPClient
from gspread.utils import ValueInputOption, rowcol_to_a1

from .errors import ConfigurationError, StoreWriteFailure

logger = logging.getLogger(__name__)

def _get_client():
    sa_path = os.getenv("GSPREAD_SERVICE_ACCOUNT_JSON", "").strip()
    if sa_path:
        return gspread.service_account(filename=sa_path, http_client=BackOffHTTPClient)
    return gspread.oauth(
        credentials_filename=os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "credentials", "client_secret.json"),
        authorized_user_filename=os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "credentials", "sheets_token.json"),
        http_client=BackOffHTTPClient,
    )

def open_spreadsheet(spreadsheet_id: Optional[str] = None, spreadsheet_name: Optional[str] = None, client=None):
    """Open an existing spreadsheet. Provisioning is not done here."""
    gc = client or _get_client()
    try:
        if spreadsheet_id:
            return gc.open_by_key(spreadsheet_id)
        if spreadsheet_name:
            return gc.open(spreadsheet_name)
    except gspread.SpreadsheetNotFound as e:
        raise ConfigurationError(f"Spreadsheet not found: {spreadsheet_id or spreadsheet_name}") from e
    raise ConfigurationError("sheets.spreadsheet_id or sheets.spreadsheet_name must be set")

def open_worksheet(spreadsheet, worksheet_name: str):
    try:
        return spreadsheet.worksheet(worksheet_name)
    except gspread.WorksheetNotFound as e:
        raise ConfigurationError(f"Worksheet {worksheet_name!r} not found in {spreadsheet.title!r}") from e


class SheetRowStore:
    """Fixed-width rows on one worksheet, addressed by 1-based sheet row."""

    def __init__(self, ws, width: int):
        self.ws = ws
        self.width = width

    def get_all_rows(self) -> List[List[Any]]:
        return self.ws.get_all_values()

    def _row_range(self, row_id: int) -> str:
        return f"{rowcol_to_a1(row_id, 1)}:{rowcol_to_a1(row_id, self.width)}"

    def update_rows(self, updates: List[Tuple[int, List[Any]]]) -> None:
        if not updates:
            return
        data = [{"range": self._row_range(row_id), "values": [values[: self.width]]} for row_id, values in updates]
        try:
            self.ws.batch_update(data, value_input_option=ValueInputOption.raw)
        except gspread.exceptions.GSpreadException as e:
            raise StoreWriteFailure(f"Updating {len(updates)} row(s) failed: {e}") from e
        logger.info("Updated %d row(s) on %r", len(updates), self.ws.title)

    def append_rows(self, rows: List[List[Any]]) -> None:
        if not rows:
            return
        try:
            self.ws.append_rows([r[: self.width] for r in rows], value_input_option=ValueInputOption.raw, table_range="A1")
        except gspread.exceptions.GSpreadException as e:
            raise StoreWriteFailure(f"Appending {len(rows)} row(s) failed: {e}") from e
        logger.info("Appended %d row(s) to %r", len(rows), self.ws.title)
