"""
GraphQL query strings for Shopify Admin API.
"""


# Fields shared by every product read. Only the first variant is priced.
PRODUCT_FIELDS = '''
  id
  title
  handle
  status
  variants(first: 1) {
    edges {
      node {
        id
        sku
        price
        compareAtPrice
      }
    }
  }
  supplierLink: metafield(namespace: $namespace, key: $key) {
    value
  }
'''


# One page of the catalog, cursor paginated
PRODUCTS_PAGE_QUERY = f'''
query GetProducts($first: Int!, $cursor: String, $namespace: String!, $key: String!) {{
  products(first: $first, after: $cursor) {{
    pageInfo {{
      hasNextPage
      endCursor
    }}
    edges {{
      node {{
        {PRODUCT_FIELDS}
      }}
    }}
  }}
}}
'''


PRODUCT_BY_ID_QUERY = f'''
query GetProduct($id: ID!, $namespace: String!, $key: String!) {{
  product(id: $id) {{
    {PRODUCT_FIELDS}
  }}
}}
'''


PRODUCT_BY_HANDLE_QUERY = f'''
query GetProductByHandle($handle: String!, $namespace: String!, $key: String!) {{
  productByHandle(handle: $handle) {{
    {PRODUCT_FIELDS}
  }}
}}
'''


# Connection check
SHOP_QUERY = '''
query GetShop {
  shop {
    name
    myshopifyDomain
    currencyCode
  }
}
'''
