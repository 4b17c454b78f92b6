import sys
import os
import asyncio
import logging

import streamlit as st
from sqlalchemy.pool import NullPool

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from paycore.config import load_settings
from paycore.domain import PaymentMethod
from paycore.messaging import PAYMENT_LABELS, format_brl
from paycore.pix import decode_payload
from paycore.service import CartService
from paycore.sql_store import SqlStore
from paycore.storage import MappingCartStorage
from paycore.store import InMemoryStore
from paycore.transforms import load_seed

logging.basicConfig(level=logging.INFO)

SEED_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "seed.json")


# ============ Кэширование ресурсов ============
@st.cache_resource
def get_settings():
    return load_settings()


@st.cache_resource
def get_store():
    settings = get_settings()
    if not settings.database_url:
        return InMemoryStore.from_seed(SEED_PATH, settings.store_id)

    # NullPool: каждый rerun Streamlit - новый event loop
    store = SqlStore(settings.database_url, poolclass=NullPool)

    async def prepare():
        await store.create_all()
        if not await store.list_products(settings.store_id):
            products, coupons = load_seed(SEED_PATH)
            await store.seed(products, coupons, settings.store_id)

    asyncio.run(prepare())
    return store


settings = get_settings()
store = get_store()

st.set_page_config(page_title=settings.store_name, page_icon="🛒", layout="wide")

# Корзина создаётся один раз на сессию
if "cart_service" not in st.session_state:
    st.session_state.cart_service = CartService(
        MappingCartStorage(st.session_state, key="cart_json"), store, settings
    )
if "receipt" not in st.session_state:
    st.session_state.receipt = None

cart = st.session_state.cart_service


# ============ HEADER ============
st.title(f"🛒 {settings.store_name}")

with st.sidebar:
    page = st.radio("Seções", ["🏪 Catálogo", "🛒 Carrinho"], label_visibility="collapsed")
    st.metric("Itens no carrinho", cart.item_count)


# ============ PAGE: КАТАЛОГ ============
if page == "🏪 Catálogo":
    products = asyncio.run(store.list_products(settings.store_id))

    for p in filter(lambda p: p.active, products):
        cols = st.columns([5, 2, 2, 2])
        with cols[0]:
            st.markdown(f"**{p.name}**")
            st.caption(f"{p.category} · estoque: {p.stock}")
        with cols[1]:
            if p.promotional_price:
                st.write(f"~~{format_brl(p.price)}~~ {format_brl(p.promotional_price)}")
            else:
                st.write(format_brl(p.price))
        with cols[2]:
            qty = st.number_input(
                "Qtd", min_value=1, value=1, key=f"qty_{p.id}", label_visibility="collapsed"
            )
        with cols[3]:
            if st.button("➕ Adicionar", key=f"add_{p.id}"):
                cart.add_item(p, int(qty))
                st.success(f"Adicionado: {p.name}")
        st.divider()


# ============ PAGE: КОРЗИНА ============
elif page == "🛒 Carrinho":
    receipt = st.session_state.receipt
    if receipt is not None:
        st.success(f"🎉 Pedido #{receipt.display_id} criado! Total: {format_brl(receipt.totals.total)}")
        st.link_button("Enviar pedido no WhatsApp", receipt.whatsapp_url)
        if receipt.pix_payload:
            st.subheader("Pague com Pix")
            st.code(receipt.pix_payload, language=None)
            decoded = decode_payload(receipt.pix_payload)
            st.caption(f"Chave: {decoded['26.01']} · Valor: R$ {decoded['54']}")
        if st.button("Nova compra"):
            st.session_state.receipt = None
            st.rerun()

    elif not cart.items:
        st.info("Seu carrinho está vazio.")

    else:
        for item in cart.items:
            cols = st.columns([5, 2, 2, 1])
            with cols[0]:
                st.write(f"**{item.name}**")
            with cols[1]:
                new_qty = st.number_input(
                    "Qtd",
                    min_value=0,
                    value=item.quantity,
                    key=f"cart_qty_{item.product_id}",
                    label_visibility="collapsed",
                )
                if new_qty != item.quantity:
                    cart.update_quantity(item.product_id, int(new_qty))
                    st.rerun()
            with cols[2]:
                st.write(format_brl(item.line_total))
            with cols[3]:
                if st.button("🗑️", key=f"remove_{item.product_id}"):
                    cart.remove_item(item.product_id)
                    st.rerun()

        st.divider()

        # Купон
        col1, col2 = st.columns([3, 1])
        with col1:
            code = st.text_input("Cupom", key="coupon_code")
        with col2:
            if st.button("Aplicar") and code:
                result = asyncio.run(cart.apply_coupon(code))
                if result.is_right:
                    st.success("Cupom aplicado com sucesso!")
                else:
                    st.error(result.failure.message)
        if cart.applied_coupon:
            st.caption(f"Cupom aplicado: {cart.applied_coupon.code}")

        method = st.radio(
            "Forma de pagamento",
            list(PaymentMethod),
            format_func=lambda m: PAYMENT_LABELS[m],
            horizontal=True,
        )
        totals = cart.totals(method)

        st.write(f"Subtotal: {format_brl(totals.subtotal)}")
        if totals.coupon_discount > 0:
            st.write(f"Cupom: -{format_brl(totals.coupon_discount)}")
        if totals.payment_discount > 0:
            st.write(f"Desconto Pix: -{format_brl(totals.payment_discount)}")
        st.markdown(f"### Total: **{format_brl(totals.total)}**")

        customer_name = st.text_input("Seu nome")
        notes = st.text_area("Observações")

        if st.button("✅ Finalizar pedido", type="primary", disabled=not customer_name):
            result = asyncio.run(cart.checkout(customer_name, notes, method))
            if result.is_right:
                st.session_state.receipt = result.value
                st.rerun()
            else:
                st.error(result.failure.message)
