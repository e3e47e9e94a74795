"""
Excel export: one sheet per category, fixed columns, styled header.
"""

import logging
import re
from pathlib import Path

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

# (record key, header, column width)
COLUMNS = [
    ('category', 'Category', 20),
    ('name', 'Business Name', 35),
    ('address', 'Full Address', 50),
    ('phone', 'Phone Number', 20),
    ('email', 'Email ID', 30),
    ('websitePresent', 'Website Present', 15),
    ('website', 'Website URL', 40),
    ('iceBreaker', 'Ice Breaker', 80),
]
HEADERS = [header for _, header, _ in COLUMNS]

DEFAULT_CATEGORY = 'General'
EMPTY_SHEET = 'No Results'

HEADER_FILL = PatternFill(start_color='FF2563EB', end_color='FF2563EB', fill_type='solid')
HEADER_FONT = Font(name='Arial', size=11, bold=True, color='FFFFFFFF')
YES_FONT = Font(color='FF059669', bold=True)
NO_FONT = Font(color='FFDC2626', bold=True)
LINK_FONT = Font(color='FF2563EB', underline='single')
_EDGE = Side(style='thin', color='FFDEE2E6')
CELL_BORDER = Border(top=_EDGE, left=_EDGE, bottom=_EDGE, right=_EDGE)


def sheet_name(category: str, used: set) -> str:
    """Excel-safe, unique sheet title (max 31 chars)."""
    name = re.sub(r'[\\/*?\[\]:]', '', category).strip()[:31] or 'Sheet1'
    candidate, n = name, 2
    while candidate.lower() in used:
        suffix = f' ({n})'
        candidate = name[:31 - len(suffix)] + suffix
        n += 1
    used.add(candidate.lower())
    return candidate


def group_by_category(businesses: list) -> dict:
    groups = {}
    for biz in businesses:
        category = (biz.get('category') or '').strip() or DEFAULT_CATEGORY
        groups.setdefault(category, []).append(biz)
    return groups


def _frame(businesses: list) -> pd.DataFrame:
    rows = []
    for biz in businesses:
        row = {key: biz.get(key) or '' for key, _, _ in COLUMNS}
        row['websitePresent'] = 'Yes' if biz.get('website') else 'No'
        rows.append(row)
    df = pd.DataFrame(rows, columns=[key for key, _, _ in COLUMNS])
    return df.rename(columns=dict(zip(df.columns, HEADERS)))


def _style_sheet(ws, businesses: list):
    ws.freeze_panes = 'A2'
    for idx, (_, _, width) in enumerate(COLUMNS, 1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    for cell in ws[1]:
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal='center', vertical='middle')
    ws.row_dimensions[1].height = 25

    present_col = HEADERS.index('Website Present') + 1
    website_col = HEADERS.index('Website URL') + 1
    for row_idx, biz in enumerate(businesses, 2):
        for cell in ws[row_idx]:
            cell.alignment = Alignment(vertical='middle', wrap_text=True)
        present = ws.cell(row=row_idx, column=present_col)
        present.alignment = Alignment(horizontal='center', vertical='middle')
        present.font = YES_FONT if biz.get('website') else NO_FONT
        if biz.get('website'):
            link = ws.cell(row=row_idx, column=website_col)
            link.hyperlink = biz['website']
            link.font = LINK_FONT

    for row in ws.iter_rows():
        for cell in row:
            cell.border = CELL_BORDER


def generate_excel(businesses: list, output_path) -> Path:
    """Write the workbook and return its path. Creates the directory if needed."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    groups = group_by_category(businesses) or {EMPTY_SHEET: []}
    used = set()
    with pd.ExcelWriter(output_path, engine='openpyxl') as writer:
        for category, rows in groups.items():
            name = sheet_name(category, used)
            if rows:
                df = _frame(rows)
            else:
                df = pd.DataFrame([['No results found'] + [''] * (len(HEADERS) - 1)], columns=HEADERS)
            df.to_excel(writer, sheet_name=name, index=False)
            _style_sheet(writer.sheets[name], rows)

    logger.info('Wrote %d businesses in %d sheet(s) to %s', len(businesses), len(groups), output_path)
    return output_path
