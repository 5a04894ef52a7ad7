"""UI strings for the public pages, English and Vietnamese."""

from .config import DEFAULT_LOCALE

STRINGS = {
    "en": {
        "checkin.title": "Event Check-in",
        "checkin.subtitle": "Check in to an event to start ordering",
        "checkin.event": "Event",
        "checkin.phone": "Phone number",
        "checkin.phone_help": "10 digits, e.g. 0901234567",
        "checkin.shop_name": "Shop name",
        "checkin.shop_name_help": "Only needed the first time you check in",
        "checkin.submit": "Check in",
        "checkin.no_events": "There are no active events right now.",
        "checkin.invalid_phone": "Please enter a 10 digit phone number.",
        "checkin.shop_required":
            "This phone number is new. Please enter your shop name.",
        "checkin.event_required": "Please select an event.",
        "checkin.event_inactive": "This event is not open for check-in.",
        "order.title": "Order packages",
        "order.search": "Search products",
        "order.add": "Add",
        "order.cart": "Your cart",
        "order.cart_empty": "Your cart is empty.",
        "order.checkout": "Go to checkout",
        "order.no_products": "No products found.",
        "order.shop": "Shop",
        "order.leave": "Switch shop",
        "checkout.title": "Checkout",
        "checkout.product": "Product",
        "checkout.quantity": "Quantity",
        "checkout.total": "Total packages",
        "checkout.notes": "Notes",
        "checkout.confirm": "Confirm order",
        "checkout.back": "Back to products",
        "checkout.empty": "Add at least one product before checking out.",
        "checkout.success": "Thank you! Your order has been placed.",
        "checkout.order_id": "Order ID",
        "checkout.order_more": "Order more",
        "leaderboard.title": "Leaderboard",
        "leaderboard.rank": "Rank",
        "leaderboard.shop": "Shop",
        "leaderboard.products": "Products",
        "leaderboard.total": "Total",
        "leaderboard.empty": "No orders yet.",
        "leaderboard.event": "Event",
        "leaderboard.show": "Show",
        "nav.checkin": "Check-in",
        "nav.leaderboard": "Leaderboard",
        "pagination.prev": "Previous",
        "pagination.next": "Next",
        "pagination.page": "Page",
    },
    "vi": {
        "checkin.title": "Check-in sự kiện",
        "checkin.subtitle": "Check-in vào sự kiện để bắt đầu đặt hàng",
        "checkin.event": "Sự kiện",
        "checkin.phone": "Số điện thoại",
        "checkin.phone_help": "10 chữ số, ví dụ 0901234567",
        "checkin.shop_name": "Tên cửa hàng",
        "checkin.shop_name_help": "Chỉ cần nhập lần đầu check-in",
        "checkin.submit": "Check-in",
        "checkin.no_events": "Hiện không có sự kiện nào đang diễn ra.",
        "checkin.invalid_phone": "Vui lòng nhập số điện thoại 10 chữ số.",
        "checkin.shop_required":
            "Số điện thoại mới. Vui lòng nhập tên cửa hàng.",
        "checkin.event_required": "Vui lòng chọn sự kiện.",
        "checkin.event_inactive": "Sự kiện này hiện không mở check-in.",
        "order.title": "Đặt gói sản phẩm",
        "order.search": "Tìm sản phẩm",
        "order.add": "Thêm",
        "order.cart": "Giỏ hàng",
        "order.cart_empty": "Giỏ hàng trống.",
        "order.checkout": "Thanh toán",
        "order.no_products": "Không tìm thấy sản phẩm.",
        "order.shop": "Cửa hàng",
        "order.leave": "Đổi cửa hàng",
        "checkout.title": "Thanh toán",
        "checkout.product": "Sản phẩm",
        "checkout.quantity": "Số lượng",
        "checkout.total": "Tổng số gói",
        "checkout.notes": "Ghi chú",
        "checkout.confirm": "Xác nhận đơn hàng",
        "checkout.back": "Quay lại sản phẩm",
        "checkout.empty": "Vui lòng thêm ít nhất một sản phẩm.",
        "checkout.success": "Cảm ơn! Đơn hàng của bạn đã được ghi nhận.",
        "checkout.order_id": "Mã đơn hàng",
        "checkout.order_more": "Đặt thêm",
        "leaderboard.title": "Bảng xếp hạng",
        "leaderboard.rank": "Hạng",
        "leaderboard.shop": "Cửa hàng",
        "leaderboard.products": "Sản phẩm",
        "leaderboard.total": "Tổng",
        "leaderboard.empty": "Chưa có đơn hàng.",
        "leaderboard.event": "Sự kiện",
        "leaderboard.show": "Xem",
        "nav.checkin": "Check-in",
        "nav.leaderboard": "Bảng xếp hạng",
        "pagination.prev": "Trước",
        "pagination.next": "Sau",
        "pagination.page": "Trang",
    },
}


def translate(locale: str, key: str) -> str:
    table = STRINGS.get(locale) or STRINGS[DEFAULT_LOCALE]
    return table.get(key) or STRINGS["en"].get(key) or key


def translator(locale: str):
    return lambda key: translate(locale, key)
