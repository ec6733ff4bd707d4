"""
API tests for the FastAPI adapter
"""

import io

from fastapi.testclient import TestClient
from pypdf import PdfReader, PdfWriter

from orderdocs.main import app

client = TestClient(app)


def blank_pdf(*sizes):
    writer = PdfWriter()
    for width, height in sizes:
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_ping():
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_crop_boxes():
    response = client.post("/api/v1/crop/boxes", json={"width": 612, "height": 1000, "split_ratio": 0.45})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["invoice_box"] == {"left": 0, "bottom": 0, "right": 612, "top": 450}
    assert data["label_box"]["bottom"] == 450
    assert data["label_box"]["top"] == 1000


def test_crop_boxes_degenerate():
    response = client.post("/api/v1/crop/boxes", json={"width": 612, "height": 792, "split_ratio": 0})
    assert response.status_code == 422


def test_crop_returns_combined_pdf():
    pdf = blank_pdf((612, 792), (612, 792))
    response = client.post(
        "/api/v1/crop",
        files={"file": ("labels.pdf", pdf, "application/pdf")},
        data={"split_ratio": "0.5", "output": "invoices"},
    )

    assert response.status_code == 200, response.text
    assert response.headers["content-type"] == "application/pdf"
    reader = PdfReader(io.BytesIO(response.content))
    assert len(reader.pages) == 2
    assert float(reader.pages[0].mediabox.top) == 396


def test_crop_rejects_nan_split_ratio():
    pdf = blank_pdf((612, 792))
    response = client.post(
        "/api/v1/crop",
        files={"file": ("labels.pdf", pdf, "application/pdf")},
        data={"split_ratio": "nan"},
    )

    assert response.status_code == 422, response.text
    assert response.json()["error"] == "CropGeometryError"


def test_crop_rejects_wrong_extension():
    response = client.post(
        "/api/v1/crop",
        files={"file": ("orders.csv", b"a,b\n1,2\n", "text/csv")},
    )
    assert response.status_code == 415
    assert "'.csv'" in response.json()["detail"]


def test_parse_blank_pdf():
    pdf = blank_pdf((612, 792))
    response = client.post(
        "/api/v1/parse",
        files={"file": ("labels.pdf", pdf, "application/pdf")},
        data={"marketplace": "flipkart"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["meta"]["pages_skipped"] == 1
    assert body["data"]["marketplace"] == "flipkart"


def test_parse_unknown_marketplace():
    pdf = blank_pdf((612, 792))
    response = client.post(
        "/api/v1/parse",
        files={"file": ("labels.pdf", pdf, "application/pdf")},
        data={"marketplace": "ebay"},
    )
    assert response.status_code == 422


def test_parse_csv():
    pdf = blank_pdf((612, 792))
    response = client.post("/api/v1/parse/csv", files={"file": ("labels.pdf", pdf, "application/pdf")})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[0].startswith("page_number,order_id")
