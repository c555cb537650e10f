"""
Address Collection Form — recipient-facing, no account required.

GET  /collect-address?token=...  renders the shipping address form
POST /collect-address?token=...  stores the address (JSON body) and
                                 resumes the waiting execution

Invalid or expired tokens get a static 404 page. A token that was
already used gets a 200 with a "link already used" message, so a
double-submitted form never shows the recipient an error.
"""

import html
import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse, JSONResponse

from autogift.api.dependencies import get_address_gate
from autogift.core.errors import TokenInvalidError
from autogift.models.addresses import AddressSubmitRequest, AddressSubmitResponse
from autogift.services.address_collection import AddressCollectionGate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["address-collection"])

INVALID_LINK_MESSAGE = "This link is invalid or has expired"
ALREADY_USED_MESSAGE = "This link has already been used. Thank you, we have your address!"


# ===================================================================
# Page rendering
# ===================================================================

def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(title)}</title>
    <style>
        * {{ box-sizing: border-box; }}
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            padding: 40px 16px;
            background: #faf7ff;
            color: #1f1235;
        }}
        .container {{ max-width: 420px; width: 100%; }}
        h1 {{ font-size: 24px; margin-bottom: 8px; }}
        p {{ color: #4b4060; line-height: 1.5; }}
        label {{ display: block; font-size: 14px; margin-top: 12px; }}
        input {{
            width: 100%;
            padding: 10px;
            margin-top: 4px;
            border: 1px solid #d6cce6;
            border-radius: 8px;
            font-size: 15px;
        }}
        button {{
            margin-top: 20px;
            width: 100%;
            padding: 14px;
            background: #7c3aed;
            color: white;
            border: none;
            border-radius: 10px;
            font-size: 16px;
            font-weight: 600;
        }}
        #result {{ margin-top: 16px; font-weight: 600; }}
    </style>
</head>
<body>
    <div class="container">
{body}
    </div>
</body>
</html>"""


def _message_page(title: str, message: str) -> str:
    return _page(title, f"        <h1>{html.escape(title)}</h1>\n        <p>{html.escape(message)}</p>")


def _invalid_link_response() -> HTMLResponse:
    return HTMLResponse(
        content=_message_page("Link unavailable", INVALID_LINK_MESSAGE),
        status_code=status.HTTP_404_NOT_FOUND,
    )


def _form_page(token: str) -> str:
    fields = [
        ("name", "Full name", True),
        ("address_line1", "Address line 1", True),
        ("address_line2", "Address line 2 (optional)", False),
        ("city", "City", True),
        ("state", "State / region", True),
        ("zip_code", "ZIP / postal code", True),
        ("country", "Country", True),
    ]
    rows = []
    for key, label, required in fields:
        attrs = f'id="{key}" name="{key}"'
        if required:
            attrs += " required"
        if key == "country":
            attrs += ' value="US"'
        rows.append(
            f'            <label for="{key}">{label}</label>\n'
            f"            <input {attrs}>"
        )
    inputs = "\n".join(rows)
    action = f"/collect-address?token={html.escape(token, quote=True)}"
    body = f"""        <h1>Where should we send your gift?</h1>
        <p>Someone who cares about you set up a gift. Share your shipping address below.
        This link works once.</p>
        <form id="address-form">
{inputs}
            <button type="submit">Send my address</button>
        </form>
        <p id="result"></p>
        <script>
            document.getElementById("address-form").addEventListener("submit", async (event) => {{
                event.preventDefault();
                const address = Object.fromEntries(new FormData(event.target).entries());
                const response = await fetch("{action}", {{
                    method: "POST",
                    headers: {{"Content-Type": "application/json"}},
                    body: JSON.stringify({{address}}),
                }});
                if (response.ok) {{
                    const data = await response.json();
                    event.target.remove();
                    document.getElementById("result").textContent = data.message;
                }} else if (response.status === 422) {{
                    document.getElementById("result").textContent = "Please check the address fields.";
                }} else {{
                    document.open();
                    document.write(await response.text());
                    document.close();
                }}
            }});
        </script>"""
    return _page("Share your shipping address", body)


# ===================================================================
# GET /collect-address
# ===================================================================

@router.get("/collect-address", response_class=HTMLResponse)
async def address_form(
    token: str = Query(default=""),
    gate: AddressCollectionGate = Depends(get_address_gate),
) -> HTMLResponse:
    """
    Render the address form for a usable token.

    Returns:
        200: The form, or an "already used" page for a consumed token.
        404: Unknown or expired token.
    """
    try:
        gate.validate(token)
    except TokenInvalidError as exc:
        if exc.already_collected:
            return HTMLResponse(content=_message_page("Already received", ALREADY_USED_MESSAGE))
        return _invalid_link_response()

    return HTMLResponse(content=_form_page(token))


# ===================================================================
# POST /collect-address
# ===================================================================

@router.post("/collect-address", response_model=AddressSubmitResponse)
async def submit_address(
    payload: AddressSubmitRequest,
    token: str = Query(default=""),
    gate: AddressCollectionGate = Depends(get_address_gate),
):
    """
    Store the recipient's address and resume the execution.

    Returns:
        200: Address stored (status "collected"), or the token was
             already used (status "already_used").
        404: Unknown or expired token (static HTML page).
        422: Address fields missing or blank.
    """
    try:
        return await gate.submit(token, payload.address)
    except TokenInvalidError as exc:
        if exc.already_collected:
            return JSONResponse(
                content=AddressSubmitResponse(
                    success=False,
                    status="already_used",
                    message=ALREADY_USED_MESSAGE,
                ).model_dump(),
                status_code=status.HTTP_200_OK,
            )
        return _invalid_link_response()
