# test_app/vulnerable.py
"""
Deliberately vulnerable fixture site

Serves one known instance of each vulnerability class next to safe
counterparts:

    /search?q=           reflected XSS (GET form on the home page)
    /contact             POST form without an anti-CSRF token
    /account             POST form with a hidden token (safe)
    /products/{id}       sequential identifiers without authorization (IDOR)
    /items?id=           SQL errors leaked for a stray quote (SQLi)
    /include?file=       local and remote file inclusion
    /safe-search?q=      escaped reflection (safe)
    /chain/a ... /chain/h  a linear chain of pages for depth tests
    /moved, /old-contact redirects to /chain/h and /contact
    /loop                redirects to itself
    /links               unlinked hub of redirects and broken links

Run it standalone with ``python test_app/vulnerable.py``.
"""

from html import escape

from aiohttp import web


PRODUCTS = {
    1: ("Standard Widget", "alice@example.com"),
    2: ("Deluxe Widget", "bob@example.com"),
    3: ("Widget Pro", "carol@example.com"),
}

ITEMS = {"1": "Blue Mug"}

PASSWD = (
    "root:x:0:0:root:/root:/bin/bash\n"
    "daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin\n"
    "bin:x:2:2:bin:/bin:/usr/sbin/nologin\n"
)

DOCUMENTS = {"about.txt": "VulnMap fixture site. Nothing to see here."}

CHAIN = "abcdefgh"

EXTERNAL_LINK = "https://external.example.org/partner"


def page(title: str, body: str) -> web.Response:
    return web.Response(
        text=f"<html><head><title>{title}</title></head><body><h1>{title}</h1>{body}</body></html>",
        content_type="text/html"
    )


# ==========================================
# NAVIGATION
# ==========================================

async def index(request):
    return page("Home", f"""
        <form action="/search" method="get">
            <input type="text" name="q">
            <input type="submit" value="Search">
        </form>
        <ul>
            <li><a href="/contact">Contact</a></li>
            <li><a href="/account">Account</a></li>
            <li><a href="/products/1">Featured product</a></li>
            <li><a href="/items?id=1">Item of the day</a></li>
            <li><a href="/include?file=about.txt">About</a></li>
            <li><a href="/safe-search?q=widgets">Widgets</a></li>
            <li><a href="/chain/{CHAIN[0]}">Archive</a></li>
            <li><a href="{EXTERNAL_LINK}">Partner</a></li>
            <li><a href="mailto:info@example.com">Mail us</a></li>
        </ul>
    """)


async def chain(request):
    name = request.match_info["name"]
    if name not in CHAIN:
        raise web.HTTPNotFound()
    position = CHAIN.index(name)
    links = '<a href="/">Home</a>'
    if position + 1 < len(CHAIN):
        links += f' <a href="/chain/{CHAIN[position + 1]}">Next</a>'
    return page(f"Archive {name}", links)


async def link_hub(request):
    return page("Links", """
        <a href="/contact">Contact</a>
        <a href="/old-contact">Contact (old address)</a>
        <a href="/loop">Loop</a>
        <a href="/products/99">Retired product</a>
    """)


def redirect_to(location: str):
    async def handler(request):
        raise web.HTTPFound(location)
    return handler


# ==========================================
# XSS VULNERABILITIES
# ==========================================

async def search(request):
    """Reflected XSS"""
    q = request.query.get("q", "")
    # VULNERABLE: Direct rendering without escaping
    return page("Search", f"<p>Results for: {q}</p>")


async def safe_search(request):
    """Secure implementation"""
    q = request.query.get("q", "")
    return page("Search", f"<p>Results for: {escape(q)}</p>")


# ==========================================
# CSRF VULNERABILITIES
# ==========================================

async def contact(request):
    """No CSRF protection"""
    if request.method == "POST":
        data = await request.post()
        return page("Contact", f"<p>Thanks, {escape(data.get('name', ''))}!</p>")
    return page("Contact", """
        <form action="/contact" method="post">
            <input type="text" name="name">
            <input type="email" name="email">
            <textarea name="message"></textarea>
            <button type="submit">Send</button>
        </form>
    """)


async def account(request):
    """Token-protected form"""
    if request.method == "POST":
        return page("Account", "<p>Settings saved.</p>")
    return page("Account", """
        <form action="/account" method="post">
            <input type="hidden" name="csrf_token" value="3f9a1c77e2">
            <input type="text" name="display_name">
            <button type="submit">Save</button>
        </form>
    """)


# ==========================================
# ACCESS CONTROL VULNERABILITIES
# ==========================================

async def product(request):
    """IDOR: any product id is served, owner details included"""
    product_id = int(request.match_info["id"])
    if product_id not in PRODUCTS:
        raise web.HTTPNotFound(text="Product not found")
    name, owner = PRODUCTS[product_id]
    return page(name, f"<p>Product #{product_id}</p><p>Owner: {owner}</p>")


async def include(request):
    """Local and remote file inclusion"""
    filename = request.query.get("file", "")
    # VULNERABLE: No path validation
    if filename.startswith(("http://", "https://")):
        return page("Include", (
            f"<b>Warning</b>: include({escape(filename)}): failed to open stream: "
            f"HTTP request failed in /var/www/include.php on line 4"
        ))
    if filename.endswith("etc/passwd"):
        return page("Include", f"<pre>{PASSWD}</pre>")
    if filename in DOCUMENTS:
        return page("Include", f"<p>{DOCUMENTS[filename]}</p>")
    return page("Include", "<p>Document unavailable.</p>")


# ==========================================
# SQL INJECTION VULNERABILITIES
# ==========================================

async def items(request):
    """Error-based SQL injection"""
    item_id = request.query.get("id", "")
    # VULNERABLE: quote breaks out of the query string
    if "'" in item_id:
        return page("Database error", (
            "<p>You have an error in your SQL syntax; check the manual that corresponds to "
            f"your MySQL server version for the right syntax to use near '{escape(item_id)}'' at line 1</p>"
        ))
    if item_id in ITEMS:
        return page("Item", f"<p>{ITEMS[item_id]}</p>")
    return page("Item", "<p>Item not found.</p>")


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/search", search)
    app.router.add_get("/safe-search", safe_search)
    app.router.add_route("*", "/contact", contact)
    app.router.add_route("*", "/account", account)
    app.router.add_get(r"/products/{id:\d+}", product)
    app.router.add_get("/items", items)
    app.router.add_get("/include", include)
    app.router.add_get("/chain/{name}", chain)
    app.router.add_get("/links", link_hub)
    app.router.add_get("/moved", redirect_to("/chain/h"))
    app.router.add_get("/old-contact", redirect_to("/contact"))
    app.router.add_get("/loop", redirect_to("/loop"))
    return app


if __name__ == '__main__':
    web.run_app(create_app(), port=5000)
