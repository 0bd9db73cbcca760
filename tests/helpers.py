import base64
import os

PDF_PREFIX = "data:application/pdf;base64,"
CHUNK_PREFIX = "data:application/octet-stream;base64,"


def make_pdf(size=4000):
    body = os.urandom(max(size - 20, 0))
    return b"%PDF-1.4\n" + body + b"\n%%EOF\n"


def pdf_data_uri(data):
    return PDF_PREFIX + base64.b64encode(data).decode("ascii")


def chunk_data_uri(data):
    return CHUNK_PREFIX + base64.b64encode(data).decode("ascii")


def split(data, count):
    size = -(-len(data) // count)
    return [data[i * size:(i + 1) * size] for i in range(count)]
