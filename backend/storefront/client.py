# Overview: Python API client for the storefront REST API (httpx).

"""
Storefront API client.

Mirrors the browser client: keeps the bearer token after login/register,
drops it on logout, and holds a local cart (product id -> quantity) for
anonymous browsing that can be pushed to the server cart before checkout.

Non-2xx responses raise StorefrontAPIError carrying the status and the
server's error message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class StorefrontAPIError(Exception):
    """Raised when the API answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str, payload: Optional[Dict] = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class StorefrontClient:
    """
    HTTP client wrapper with authentication and convenience methods.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self.token: Optional[str] = None
        self.current_user: Optional[Dict] = None
        self.local_cart: Dict[str, int] = {}

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "StorefrontClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        """Build request headers with optional auth."""
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def request(self, method: str, path: str, **kwargs) -> Any:
        response = self.client.request(method, f"/api{path}", headers=self._headers(), **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            message = data.get("error") if isinstance(data, dict) else None
            raise StorefrontAPIError(response.status_code, message or response.reason_phrase, data)
        return data

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    def _remember(self, data: Dict) -> Dict:
        self.token = data.get("token")
        self.current_user = data.get("user")
        return data

    def register(self, name: str, email: str, password: str, **extra) -> Dict:
        payload = {"name": name, "email": email, "password": password, **extra}
        return self._remember(self.request("POST", "/auth/register", json=payload))

    def login(self, email: str, password: str) -> Dict:
        """Authenticate and store token."""
        return self._remember(self.request("POST", "/auth/login", json={"email": email, "password": password}))

    def logout(self) -> None:
        """Logout and clear token. The local token is dropped even if the call fails."""
        try:
            if self.token:
                self.request("POST", "/auth/logout")
        finally:
            self.token = None
            self.current_user = None

    def get_profile(self) -> Dict:
        return self.request("GET", "/auth/profile")

    def update_profile(self, **fields) -> Dict:
        data = self.request("PUT", "/auth/profile", json=fields)
        self.current_user = data.get("user", self.current_user)
        return data

    def change_password(self, current_password: str, new_password: str) -> Dict:
        """All sessions are revoked server-side, so the local token is dropped."""
        data = self.request(
            "PUT",
            "/auth/change-password",
            json={"current_password": current_password, "new_password": new_password},
        )
        self.token = None
        return data

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def get_products(self, **filters) -> Dict:
        params = {k: v for k, v in filters.items() if v is not None}
        return self.request("GET", "/products", params=params)

    def get_product(self, product_id: str) -> Dict:
        return self.request("GET", f"/products/{product_id}")

    def get_categories(self) -> Dict:
        return self.request("GET", "/products/categories")

    def create_product(self, product: Dict) -> Dict:
        return self.request("POST", "/products", json=product)

    def update_product(self, product_id: str, patch: Dict) -> Dict:
        return self.request("PUT", f"/products/{product_id}", json=patch)

    def delete_product(self, product_id: str) -> Dict:
        return self.request("DELETE", f"/products/{product_id}")

    def upload_product_image(self, filename: str, content: bytes, content_type: str = "image/png") -> Dict:
        return self.request("POST", "/products/upload-image", files={"image": (filename, content, content_type)})

    # -------------------------------------------------------------------------
    # Server cart
    # -------------------------------------------------------------------------

    def get_cart(self) -> Dict:
        return self.request("GET", "/cart")

    def add_to_cart(self, product_id: str, quantity: int = 1) -> Dict:
        return self.request("POST", "/cart/add", json={"product_id": product_id, "quantity": quantity})

    def update_cart_item(self, product_id: str, quantity: int) -> Dict:
        return self.request("PUT", "/cart/update", json={"product_id": product_id, "quantity": quantity})

    def remove_from_cart(self, product_id: str) -> Dict:
        return self.request("DELETE", f"/cart/remove/{product_id}")

    def clear_cart(self) -> Dict:
        return self.request("DELETE", "/cart/clear")

    # -------------------------------------------------------------------------
    # Local cart (anonymous browsing)
    # -------------------------------------------------------------------------

    def add_local(self, product_id: str, quantity: int = 1) -> int:
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        self.local_cart[product_id] = self.local_cart.get(product_id, 0) + quantity
        return self.local_cart[product_id]

    def set_local(self, product_id: str, quantity: int) -> None:
        """quantity <= 0 removes the product."""
        if quantity <= 0:
            self.local_cart.pop(product_id, None)
        else:
            self.local_cart[product_id] = quantity

    def remove_local(self, product_id: str) -> None:
        self.local_cart.pop(product_id, None)

    def clear_local(self) -> None:
        self.local_cart.clear()

    @property
    def local_item_count(self) -> int:
        return sum(self.local_cart.values())

    def push_local_cart(self) -> Dict:
        """
        Merge the local cart into the server cart and empty it.

        Lines already pushed are removed from the local cart even if a later
        line fails.
        """
        for product_id in list(self.local_cart):
            self.add_to_cart(product_id, self.local_cart[product_id])
            del self.local_cart[product_id]
        return self.get_cart()

    # -------------------------------------------------------------------------
    # Orders & payments
    # -------------------------------------------------------------------------

    def create_order(self, shipping_address: str, items: Optional[list] = None, payment_method: Optional[str] = None) -> Dict:
        payload: Dict[str, Any] = {"shipping_address": shipping_address}
        if items is not None:
            payload["items"] = items
        if payment_method is not None:
            payload["payment_method"] = payment_method
        return self.request("POST", "/orders", json=payload)

    def get_orders(self) -> Dict:
        return self.request("GET", "/orders")

    def get_order(self, order_id: str) -> Dict:
        return self.request("GET", f"/orders/{order_id}")

    def update_order_status(self, order_id: str, status: str, **fields) -> Dict:
        return self.request("PUT", f"/orders/{order_id}/status", json={"status": status, **fields})

    def create_payment_preference(self, order_id: str) -> Dict:
        return self.request("POST", "/payments/preference", json={"order_id": order_id})

    def get_payment_methods(self) -> Dict:
        return self.request("GET", "/payments/methods")

    def check_payment_status(self, order_id: str) -> Dict:
        return self.request("GET", f"/payments/status/{order_id}")

    def submit_manual_payment(self, order_id: str, payment_method: str, payment_proof: Optional[str] = None) -> Dict:
        return self.request(
            "POST",
            "/payments/manual",
            json={"order_id": order_id, "payment_method": payment_method, "payment_proof": payment_proof},
        )

    def health(self) -> Dict:
        return self.request("GET", "/health")
