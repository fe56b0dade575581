SYSTEM_PROMPT = """
You are a careful document parser. Extract only what is explicitly in the PDF.
Do not guess missing values. If a value is not present, return null or omit it.
Return JSON that matches the response schema exactly.
Never include personal data or addresses in the output.
lineNo is required for every line item.
""".strip()


def build_page_prompt(page_no: int) -> str:
    return (
        f"This PDF is page {page_no} of a vendor invoice. "
        "Extract the vendor name, the invoice date (YYYY-MM-DD) and every product line "
        "on this page, numbering lines from 1."
    )
