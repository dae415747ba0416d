"""Transactional email templates."""

from html import escape

from payment_service.utils import format_currency

ROW = (
    '<tr>'
    '<td style="padding: 8px; border-bottom: 1px solid #eee;">{name}</td>'
    '<td style="padding: 8px; border-bottom: 1px solid #eee; text-align: center;">{quantity}</td>'
    '<td style="padding: 8px; border-bottom: 1px solid #eee; text-align: right;">{price}</td>'
    '</tr>'
)

TOTAL_LINE = (
    '<div style="display: flex; justify-content: space-between; font-size: 14px; margin-bottom: 4px;">'
    '<span style="color: #666;">{label}</span><span>{value}</span>'
    '</div>'
)


def render_order_confirmation(order):
    """Build the (subject, html) pair for a paid order.

    Expects ``order.items`` to be loaded; the caller renders inside its
    session so nothing is lazy-loaded after commit.
    """
    def money(amount):
        return format_currency(amount, order.currency)

    rows = "".join(
        ROW.format(
            name=escape(item.name_snapshot),
            quantity=item.quantity,
            price=money(item.total_price),
        )
        for item in order.items
    )

    totals = [
        TOTAL_LINE.format(label="Subtotal", value=money(order.subtotal)),
        TOTAL_LINE.format(label="Shipping", value=money(order.shipping_cost)),
    ]
    if order.coupon_discount > 0:
        totals.append(TOTAL_LINE.format(label="Discount", value="-" + money(order.coupon_discount)))
    totals_html = "".join(totals)

    html = f"""
<div style="font-family: Georgia, serif; max-width: 600px; margin: 0 auto; color: #1a1a1a;">
  <div style="text-align: center; padding: 24px 0; border-bottom: 2px solid #1a1a1a;">
    <h1 style="font-size: 24px; letter-spacing: 0.12em; margin: 0;">FBG</h1>
    <p style="font-size: 12px; color: #666; margin: 4px 0 0;">FASHION BY GRANT</p>
  </div>
  <div style="padding: 32px 0;">
    <h2 style="font-size: 20px; margin: 0 0 8px;">Order Confirmed</h2>
    <p style="color: #666; margin: 0 0 24px;">Thank you for your purchase! Your order has been received and is being processed.</p>
    <div style="background: #f9f8f6; padding: 16px; border-radius: 4px; margin-bottom: 24px;">
      <p style="margin: 0; font-size: 14px; color: #666;">Order Number</p>
      <p style="margin: 4px 0 0; font-size: 18px; font-weight: bold;">{escape(order.order_number)}</p>
    </div>
    <table style="width: 100%; border-collapse: collapse; font-size: 14px;">
      <thead>
        <tr style="border-bottom: 2px solid #1a1a1a;">
          <th style="padding: 8px; text-align: left;">Item</th>
          <th style="padding: 8px; text-align: center;">Qty</th>
          <th style="padding: 8px; text-align: right;">Price</th>
        </tr>
      </thead>
      <tbody>{rows}</tbody>
    </table>
    <div style="margin-top: 16px; padding-top: 16px; border-top: 2px solid #1a1a1a;">
      {totals_html}
      <div style="display: flex; justify-content: space-between; font-size: 16px; font-weight: bold; margin-top: 8px; padding-top: 8px; border-top: 1px solid #eee;">
        <span>Total</span><span>{money(order.total)}</span>
      </div>
    </div>
    <p style="color: #666; font-size: 14px; margin-top: 24px;">
      We will notify you when your order has been shipped. If you have any questions,
      please reply to this email or contact our support team.
    </p>
  </div>
  <div style="text-align: center; padding: 16px 0; border-top: 1px solid #eee; font-size: 12px; color: #999;">
    <p style="margin: 0;">Fashion By Grant</p>
  </div>
</div>
"""
    return f"Order Confirmed - {order.order_number}", html
