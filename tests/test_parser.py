import io
import logging

import pytest
import requests
import responses

from chronoflow.models import Product
from chronoflow.parser import Parser, ParserError

LOG = logging.getLogger("test-parser")

VALID_HTML = """
<html>
<body>
    <table class="table-bordered">
        <tbody>
            <tr>
                <td>Model A</td><td>Type A</td><td>5</td><td>url_a</td><td>100.00</td>
            </tr>
            <tr>
                <td>Model B</td><td>Type B</td><td> > 3 </td><td>url_b</td><td> 250.50 </td>
            </tr>
            <tr>
                <td>this table has unsifficient number of cells</td><td></td>
            </tr>
        </tbody>
    </table>
</body>
</html>"""

EXPECTED_PRODUCTS = [
    Product(model="Model A", type="Type A", quantity="5", image_url="url_a", price="100.00"),
    Product(model="Model B", type="Type B", quantity="> 3", image_url="url_b", price="250.50"),
]


@pytest.mark.parametrize(
    ("html", "expected"),
    [(VALID_HTML, EXPECTED_PRODUCTS), ("", [])],
    ids=["successful parsing", "empty html"],
)
def test_parse_table_response(html, expected):
    parser = Parser(LOG, "")
    assert parser.parse_table_response(html) == expected


def test_parse_table_response_accepts_bytes_and_streams():
    parser = Parser(LOG, "")
    assert parser.parse_table_response(VALID_HTML.encode()) == EXPECTED_PRODUCTS
    assert parser.parse_table_response(io.BytesIO(VALID_HTML.encode())) == EXPECTED_PRODUCTS


def test_parse_table_response_ignores_other_tables():
    html = """
    <table class="other"><tbody>
      <tr><td>X</td><td>X</td><td>1</td><td>x</td><td>1</td></tr>
    </tbody></table>
    <table class="table-bordered"><tbody>
      <tr><td>Model 1</td><td>Type 1</td><td>1</td><td>url1</td><td>99.99</td></tr>
    </tbody></table>"""
    parser = Parser(LOG, "")
    assert parser.parse_table_response(html) == [
        Product(model="Model 1", type="Type 1", quantity="1", image_url="url1", price="99.99")
    ]


def test_parse_table_response_rows_without_tbody():
    html = """<table class="table-bordered">
      <tr><td>Model 1</td><td>Type 1</td><td>1</td><td>url1</td><td>99.99</td></tr>
    </table>"""
    parser = Parser(LOG, "")
    assert [p.model for p in parser.parse_table_response(html)] == ["Model 1"]


def test_parse_table_response_skips_short_rows_with_warning(caplog):
    parser = Parser(LOG, "")
    with caplog.at_level(logging.WARNING, logger="test-parser"):
        products = parser.parse_table_response(VALID_HTML)
    assert len(products) == 2
    assert "insufficient cells" in caplog.text


def test_get_html_response_success():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "http://test.com/", body="OK", status=200)
        parser = Parser(LOG, "http://test.com")
        response = parser.get_html_response()
        assert response.status_code == 200
        assert response.text == "OK"
        assert rsps.calls[0].request.headers["User-Agent"].startswith("Mozilla/5.0")


def test_get_html_response_server_error():
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "http://test.com/", body="Error", status=500)
        parser = Parser(LOG, "http://test.com")
        with pytest.raises(ParserError) as info:
            parser.get_html_response()
    assert "status code error: [500]" in str(info.value)


def test_get_html_response_network_error():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET,
            "http://test.com/",
            body=requests.ConnectionError("connection failed"),
        )
        parser = Parser(LOG, "http://test.com")
        with pytest.raises(ParserError) as info:
            parser.get_html_response()
    assert "connection failed" in str(info.value)


def test_get_html_response_invalid_url():
    parser = Parser(LOG, "://invalid-url")
    with pytest.raises(ParserError) as info:
        parser.get_html_response()
    assert "failed to parse destination URL" in str(info.value)


def test_parse_products():
    success_html = """
    <table class="table-bordered">
        <tbody>
            <tr><td>Model 1</td><td>Type 1</td><td>1</td><td>url1</td><td>99.99</td></tr>
        </tbody>
    </table>"""
    with responses.RequestsMock() as rsps:
        rsps.add(responses.GET, "http://valid-url.com/", body=success_html, status=200)
        parser = Parser(LOG, "http://valid-url.com")
        products = parser.parse_products()
    assert products == [
        Product(model="Model 1", type="Type 1", quantity="1", image_url="url1", price="99.99")
    ]


def test_parse_products_response_error():
    parser = Parser(LOG, ";;/invalid-url")
    with pytest.raises(ParserError) as info:
        parser.parse_products()
    assert "failed to get html response" in str(info.value)


def test_parser_uses_given_session():
    session = requests.Session()
    parser = Parser(LOG, "http://test.com", session)
    assert parser.session is session
    assert parser.dest_url == "http://test.com"