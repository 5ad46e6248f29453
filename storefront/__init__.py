# Storefront checkout and payment orchestration
